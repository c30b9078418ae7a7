"""Shared test fixtures for the layersign test suite."""

from __future__ import annotations

import datetime
import io

import keyring
import pikepdf
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import BestAvailableEncryption, pkcs12
from cryptography.x509.oid import NameOID
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError

KEYSTORE_PASSWORD = "secret"

# Fake CMS blob that satisfies length checks (~1792 bytes).
FAKE_CMS = b"\x30\x82\x07\x00" + b"\xab" * 1788


# ── Keyring backends ─────────────────────────────────────────────────


class MemoryKeyring(KeyringBackend):
    """In-process keyring so tests never touch the real system keychain."""

    priority = 1  # type: ignore[assignment]

    def __init__(self) -> None:
        super().__init__()
        self.passwords: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> str | None:
        return self.passwords.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self.passwords[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        try:
            del self.passwords[(service, username)]
        except KeyError:
            raise PasswordDeleteError(username) from None


class LockedKeyring(MemoryKeyring):
    """Keyring whose writes always fail, like a locked keychain."""

    def set_password(self, service: str, username: str, password: str) -> None:
        raise KeyringError("keychain is locked")


# ── Certificates ─────────────────────────────────────────────────────


def _name(common_name: str) -> x509.Name:
    return x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Layersign Tests"),
        ]
    )


def make_certificate(
    subject: str,
    public_key,
    issuer: str,
    issuer_key,
    *,
    not_before: datetime.datetime,
    not_after: datetime.datetime,
    ca: bool = False,
) -> x509.Certificate:
    return (
        x509.CertificateBuilder()
        .subject_name(_name(subject))
        .issuer_name(_name(issuer))
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .sign(issuer_key, hashes.SHA256())
    )


def write_keystore(path, key, cert, extra_certs, *, password=KEYSTORE_PASSWORD, alias=b"testcert"):
    data = pkcs12.serialize_key_and_certificates(
        alias,
        key,
        cert,
        extra_certs,
        BestAvailableEncryption(password.encode()),
    )
    path.write_bytes(data)
    return path


@pytest.fixture(scope="session")
def pki():
    """A CA and an RSA-2048 signer certificate valid from yesterday for a year."""
    now = datetime.datetime.now(datetime.timezone.utc)
    ca_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    ca_cert = make_certificate(
        "Layersign Test CA",
        ca_key.public_key(),
        "Layersign Test CA",
        ca_key,
        not_before=now - datetime.timedelta(days=30),
        not_after=now + datetime.timedelta(days=3650),
        ca=True,
    )
    leaf_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    leaf_cert = make_certificate(
        "Test Signer",
        leaf_key.public_key(),
        "Layersign Test CA",
        ca_key,
        not_before=now - datetime.timedelta(days=1),
        not_after=now + datetime.timedelta(days=365),
    )
    return {"ca_key": ca_key, "ca_cert": ca_cert, "leaf_key": leaf_key, "leaf_cert": leaf_cert}


@pytest.fixture(scope="session")
def keystore_dir(tmp_path_factory):
    return tmp_path_factory.mktemp("keystores")


@pytest.fixture(scope="session")
def keystore_path(pki, keystore_dir):
    """PKCS#12 file holding the signer key, its certificate and the CA."""
    return write_keystore(
        keystore_dir / "signer.p12", pki["leaf_key"], pki["leaf_cert"], [pki["ca_cert"]]
    )


@pytest.fixture(scope="session")
def expired_keystore_path(pki, keystore_dir):
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = make_certificate(
        "Expired Signer",
        pki["leaf_key"].public_key(),
        "Layersign Test CA",
        pki["ca_key"],
        not_before=now - datetime.timedelta(days=400),
        not_after=now - datetime.timedelta(days=35),
    )
    return write_keystore(keystore_dir / "expired.p12", pki["leaf_key"], cert, [pki["ca_cert"]])


@pytest.fixture(scope="session")
def future_keystore_path(pki, keystore_dir):
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = make_certificate(
        "Future Signer",
        pki["leaf_key"].public_key(),
        "Layersign Test CA",
        pki["ca_key"],
        not_before=now + datetime.timedelta(days=10),
        not_after=now + datetime.timedelta(days=400),
    )
    return write_keystore(keystore_dir / "future.p12", pki["leaf_key"], cert, [pki["ca_cert"]])


@pytest.fixture(scope="session")
def ec_keystore_path(pki, keystore_dir):
    now = datetime.datetime.now(datetime.timezone.utc)
    key = ec.generate_private_key(ec.SECP256R1())
    cert = make_certificate(
        "EC Signer",
        key.public_key(),
        "Layersign Test CA",
        pki["ca_key"],
        not_before=now - datetime.timedelta(days=1),
        not_after=now + datetime.timedelta(days=365),
    )
    return write_keystore(keystore_dir / "ec.p12", key, cert, [pki["ca_cert"]], alias=b"ecsigner")


@pytest.fixture(scope="session")
def bundle(keystore_path):
    from layersign.core.certificates import load_certificate_bundle

    return load_certificate_bundle(keystore_path, KEYSTORE_PASSWORD)


@pytest.fixture
def keystore_password():
    return KEYSTORE_PASSWORD


@pytest.fixture
def fake_cms():
    return FAKE_CMS


# ── PDF documents ────────────────────────────────────────────────────


def _save(pdf: pikepdf.Pdf, **kwargs) -> bytes:
    buf = io.BytesIO()
    pdf.save(buf, **kwargs)
    return buf.getvalue()


@pytest.fixture
def valid_pdf_bytes():
    """Create a minimal valid PDF using pikepdf."""
    pdf = pikepdf.Pdf.new()
    pdf.add_blank_page(page_size=(612, 792))
    return _save(pdf)


@pytest.fixture
def ten_kb_pdf():
    """One 600 x 800 page with about 10 KB of uncompressed page content."""
    pdf = pikepdf.Pdf.new()
    pdf.add_blank_page(page_size=(600, 800))
    page = pdf.pages[0].obj
    page.Resources = pikepdf.Dictionary(
        Font=pikepdf.Dictionary(
            F1=pikepdf.Dictionary(
                Type=pikepdf.Name.Font,
                Subtype=pikepdf.Name.Type1,
                BaseFont=pikepdf.Name.Helvetica,
            )
        )
    )
    lines = [
        f"BT /F1 9 Tf 40 {770 - (i % 60) * 12} Td (Line {i:03d} of the sample body text) Tj ET"
        for i in range(180)
    ]
    page.Contents = pdf.make_stream("\n".join(lines).encode("ascii"))
    return _save(pdf, compress_streams=False)


def _add_sig_field(pdf: pikepdf.Pdf, name: str, rect: list[int]) -> pikepdf.Object:
    page = pdf.pages[0].obj
    widget = pdf.make_indirect(
        pikepdf.Dictionary(
            Type=pikepdf.Name.Annot,
            Subtype=pikepdf.Name.Widget,
            FT=pikepdf.Name.Sig,
            T=pikepdf.String(name),
            Rect=pikepdf.Array(rect),
            F=4,
            P=page,
        )
    )
    annots = list(page.get("/Annots", []))
    page.Annots = pikepdf.Array([*annots, widget])
    if "/AcroForm" not in pdf.Root:
        pdf.Root.AcroForm = pikepdf.Dictionary(Fields=pikepdf.Array([]))
    pdf.Root.AcroForm.Fields.append(widget)
    return widget


@pytest.fixture
def pdf_with_sig_field():
    """A page with one unsigned, visible signature field named "Approval"."""
    pdf = pikepdf.Pdf.new()
    pdf.add_blank_page(page_size=(612, 792))
    _add_sig_field(pdf, "Approval", [100, 100, 300, 160])
    return _save(pdf)


@pytest.fixture
def pdf_with_two_sig_fields():
    """An invisible field "Hidden" followed by a visible field "Approval"."""
    pdf = pikepdf.Pdf.new()
    pdf.add_blank_page(page_size=(612, 792))
    _add_sig_field(pdf, "Hidden", [0, 0, 0, 0])
    _add_sig_field(pdf, "Approval", [100, 100, 300, 160])
    return _save(pdf)


@pytest.fixture
def sample_image(tmp_path):
    """A 400 x 100 RGBA PNG (wider than the 200 px limit)."""
    from PIL import Image

    path = tmp_path / "signature.png"
    img = Image.new("RGBA", (400, 100), (20, 40, 160, 200))
    img.save(path, format="PNG")
    return path


# ── Isolation ────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config file at a temp dir, clear env overrides, use an in-memory keyring."""
    import layersign.config._storage as storage
    from layersign.config import clear_session_passwords

    config_dir = tmp_path / "layersign-config"
    monkeypatch.setattr(storage, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(storage, "CONFIG_FILE", config_dir / "config.json")
    for var in (
        "LAYERSIGN_KEYSTORE",
        "LAYERSIGN_KEYSTORE_PASSWORD",
        "LAYERSIGN_ALIAS",
        "LAYERSIGN_NAME",
        "LAYERSIGN_LOCATION",
        "LAYERSIGN_REASON",
        "LAYERSIGN_RESERVED_BYTES",
        "LAYERSIGN_DIGEST",
    ):
        monkeypatch.delenv(var, raising=False)

    previous = keyring.get_keyring()
    backend = MemoryKeyring()
    keyring.set_keyring(backend)
    clear_session_passwords()
    yield config_dir
    clear_session_passwords()
    keyring.set_keyring(previous)


@pytest.fixture
def memory_keyring(isolated_config):
    return keyring.get_keyring()


@pytest.fixture
def locked_keyring(isolated_config):
    backend = LockedKeyring()
    keyring.set_keyring(backend)
    return backend
