"""
Entry point for `python -m layersign`.

Usage:
    python -m layersign sign document.pdf --keystore signer.p12
    python -m layersign fields document.pdf
    python -m layersign check document_signed.pdf
"""

from .ui.cli import main

main()
