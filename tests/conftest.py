"""Shared test fixtures for the Clinisign test suite."""

from __future__ import annotations

import datetime
import io
import re

import pikepdf
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from clinisign.core.appearance import StampDescriptor
from clinisign.core.credentials import CertificateBundle

PASSPHRASE = "s3cret-clinic"

# Fixed, tz-aware signing time inside every test certificate's validity window
SIGNING_TIME = datetime.datetime(2025, 3, 5, 17, 30, tzinfo=datetime.timezone.utc)

_NOT_BEFORE = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
_NOT_AFTER = datetime.datetime(2035, 1, 1, tzinfo=datetime.timezone.utc)


def make_name(common_name: str, email: str | None = None) -> x509.Name:
    attrs = [
        x509.NameAttribute(NameOID.COUNTRY_NAME, "BR"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Clinica Exemplo"),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ]
    if email:
        attrs.append(x509.NameAttribute(NameOID.EMAIL_ADDRESS, email))
    return x509.Name(attrs)


def make_certificate(
    subject: x509.Name,
    public_key,
    issuer: x509.Name,
    issuer_key,
    *,
    not_before: datetime.datetime = _NOT_BEFORE,
    not_after: datetime.datetime = _NOT_AFTER,
    ca: bool = False,
) -> x509.Certificate:
    """Build a certificate signed with SHA-256 by ``issuer_key``."""
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .sign(issuer_key, hashes.SHA256())
    )


def make_bundle(key, cert, chain=None, passphrase: str | None = PASSPHRASE) -> CertificateBundle:
    """Serialize key + certificates into a PKCS#12 CertificateBundle."""
    encryption = (
        serialization.BestAvailableEncryption(passphrase.encode("utf-8"))
        if passphrase
        else serialization.NoEncryption()
    )
    data = pkcs12.serialize_key_and_certificates(b"clinisign-test", key, cert, chain, encryption)
    return CertificateBundle(data=data, passphrase=passphrase)


def make_pdf(page_size: tuple[float, float] = (595, 842), pages: int = 1, **save_kwargs) -> bytes:
    """Create a blank PDF with pikepdf."""
    pdf = pikepdf.Pdf.new()
    for _ in range(pages):
        pdf.add_blank_page(page_size=page_size)
    buf = io.BytesIO()
    pdf.save(buf, **save_kwargs)
    return buf.getvalue()


def append_xref_stream_revision(pdf_bytes: bytes) -> bytes:
    """Append an object-free revision whose cross-reference section is a stream.

    This is how many signing tools close their incremental updates; the
    bytes before it are left as they are.
    """
    with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
        size = int(pdf.trailer.Size)
        root_num, root_gen = pdf.Root.objgen
    prev = int(re.findall(rb"startxref\s+(\d+)", pdf_bytes)[-1])
    base = pdf_bytes if pdf_bytes.endswith(b"\n") else pdf_bytes + b"\n"
    offset = len(base)
    # One type-1 entry for the xref stream object itself
    entry = b"\x01" + offset.to_bytes(4, "big") + b"\x00\x00"
    header = (
        f"{size} 0 obj\n<< /Type /XRef /Size {size + 1} /W [1 4 2] /Index [{size} 1] "
        f"/Prev {prev} /Root {root_num} {root_gen} R /Length {len(entry)} >>\nstream\n"
    ).encode("latin-1")
    return base + header + entry + f"\nendstream\nendobj\nstartxref\n{offset}\n%%EOF\n".encode(
        "latin-1"
    )


# ── Keys and certificates ─────────────────────────────────────────


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_cert(rsa_key):
    name = make_name("Dra. Ana Souza", "ana.souza@clinica.example")
    return make_certificate(name, rsa_key.public_key(), name, rsa_key)


@pytest.fixture(scope="session")
def bundle(rsa_key, rsa_cert):
    """Self-signed RSA-2048 PKCS#12 bundle protected by PASSPHRASE."""
    return make_bundle(rsa_key, rsa_cert)


@pytest.fixture(scope="session")
def wrong_passphrase_bundle(bundle):
    return CertificateBundle(data=bundle.data, passphrase="not-the-passphrase")


@pytest.fixture(scope="session")
def ec_bundle():
    key = ec.generate_private_key(ec.SECP256R1())
    name = make_name("Dr. Bruno Lima")
    cert = make_certificate(name, key.public_key(), name, key)
    return make_bundle(key, cert)


@pytest.fixture(scope="session")
def chain_material():
    """A CA and a leaf issued by it: (ca_key, ca_cert, leaf_key, leaf_cert)."""
    ca_key = ec.generate_private_key(ec.SECP256R1())
    ca_name = make_name("Clinica Exemplo CA")
    ca_cert = make_certificate(ca_name, ca_key.public_key(), ca_name, ca_key, ca=True)
    leaf_key = ec.generate_private_key(ec.SECP256R1())
    leaf_cert = make_certificate(
        make_name("Dr. Carlos Dias", "carlos@clinica.example"),
        leaf_key.public_key(),
        ca_name,
        ca_key,
    )
    return ca_key, ca_cert, leaf_key, leaf_cert


@pytest.fixture(scope="session")
def chain_bundle(chain_material):
    _ca_key, ca_cert, leaf_key, leaf_cert = chain_material
    return make_bundle(leaf_key, leaf_cert, [ca_cert])


# ── Documents ─────────────────────────────────────────────────────


@pytest.fixture
def pdf_bytes():
    """A one-page 595 x 842 pt (A4) PDF with a classic xref table."""
    return make_pdf()


@pytest.fixture
def xref_stream_pdf_bytes():
    """A one-page A4 PDF stored with object streams and an xref stream."""
    return make_pdf(object_stream_mode=pikepdf.ObjectStreamMode.generate)


@pytest.fixture
def descriptor():
    return StampDescriptor(
        name="Dra. Ana Souza",
        registry_id="CRM-SP 123456",
        role="Cardiologia",
        contact="ana.souza@clinica.example",
        location="Sao Paulo",
        reason="Laudo medico",
        signing_time=SIGNING_TIME,
    )
