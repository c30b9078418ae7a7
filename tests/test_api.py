"""Tests for layersign.api — high-level sign() and check()."""

from __future__ import annotations

import pytest

import layersign
from layersign.api import check, sign
from layersign.config import save_keystore_password, save_signing_config, set_session_password
from layersign.core.pdf.cms_extraction import find_byte_ranges
from layersign.errors import BadPassword, ConfigError, MalformedDocument


def _signer_name(signed: bytes) -> str:
    (result,) = check(signed)
    return result["signer"]["name"]


def test_package_exports():
    assert layersign.sign is sign
    assert layersign.check is check
    assert layersign.__version__


def test_sign_explicit_keystore(valid_pdf_bytes, keystore_path, keystore_password):
    signed = sign(valid_pdf_bytes, keystore=keystore_path, password=keystore_password)
    (result,) = check(signed)
    assert result["valid"]
    assert result["signer"]["name"] == "Test Signer"


def test_sign_keystore_from_env(valid_pdf_bytes, keystore_path, keystore_password, monkeypatch):
    monkeypatch.setenv("LAYERSIGN_KEYSTORE", str(keystore_path))
    monkeypatch.setenv("LAYERSIGN_KEYSTORE_PASSWORD", keystore_password)
    signed = sign(valid_pdf_bytes)
    assert check(signed)[0]["valid"]


def test_sign_keystore_from_config(valid_pdf_bytes, keystore_path, keystore_password):
    save_signing_config(keystore=str(keystore_path), location="Tbilisi")
    save_keystore_password(keystore_path, keystore_password)
    signed = sign(valid_pdf_bytes)
    assert check(signed)[0]["valid"]


def test_sign_session_password(valid_pdf_bytes, keystore_path, keystore_password):
    set_session_password(keystore_path, keystore_password)
    signed = sign(valid_pdf_bytes, keystore=keystore_path)
    assert check(signed)[0]["valid"]


def test_sign_no_keystore(valid_pdf_bytes):
    with pytest.raises(ConfigError, match="No keystore configured"):
        sign(valid_pdf_bytes)


def test_sign_wrong_password(valid_pdf_bytes, keystore_path):
    with pytest.raises(BadPassword):
        sign(valid_pdf_bytes, keystore=keystore_path, password="wrong")


def test_sign_explicit_password_beats_env(
    valid_pdf_bytes, keystore_path, keystore_password, monkeypatch
):
    monkeypatch.setenv("LAYERSIGN_KEYSTORE_PASSWORD", "wrong")
    signed = sign(valid_pdf_bytes, keystore=keystore_path, password=keystore_password)
    assert check(signed)[0]["valid"]


def test_sign_name_from_config(valid_pdf_bytes, keystore_path, keystore_password):
    save_signing_config(name="Configured Name")
    signed = sign(valid_pdf_bytes, keystore=keystore_path, password=keystore_password)
    assert b"/Name (Configured Name)" in signed
    # certificate identity is unchanged
    assert _signer_name(signed) == "Test Signer"


def test_sign_explicit_name_beats_env(
    valid_pdf_bytes, keystore_path, keystore_password, monkeypatch
):
    monkeypatch.setenv("LAYERSIGN_NAME", "Env Name")
    signed = sign(
        valid_pdf_bytes, keystore=keystore_path, password=keystore_password, name="Arg Name"
    )
    assert b"/Name (Arg Name)" in signed
    assert b"Env Name" not in signed


def test_sign_reserved_from_config(valid_pdf_bytes, keystore_path, keystore_password):
    save_signing_config(reserved_bytes=12288)
    signed = sign(valid_pdf_bytes, keystore=keystore_path, password=keystore_password)
    assert check(signed)[0]["valid"]
    (byte_range,) = find_byte_ranges(signed)
    assert byte_range.hex_length == 2 * 12288


def test_sign_existing_field(pdf_with_sig_field, keystore_path, keystore_password):
    signed = sign(
        pdf_with_sig_field,
        keystore=keystore_path,
        password=keystore_password,
        existing_field=True,
        field="Approval",
    )
    assert check(signed)[0]["valid"]


def test_check_unsigned(valid_pdf_bytes):
    with pytest.raises(MalformedDocument):
        check(valid_pdf_bytes)
