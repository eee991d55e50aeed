"""
Key manager — the durable MOK signing key pair and its enrollment.

The key pair is generated once and reused forever. The certificate is
written in DER form (what mokutil and sign-file expect) and the private
key in PEM form, readable by root only.

Enrollment is a two-phase affair the firmware controls: ``mokutil
--import`` only *queues* the certificate, and the MOK Manager asks for
the one-time password on the next boot. Until that happens the key is
not trusted and signing would be pointless.
"""

from __future__ import annotations

import datetime
import logging
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from vmsecureboot.adapters.registry import AdapterRegistry
from vmsecureboot.core.errors import EnrollmentError, KeyStoreError
from vmsecureboot.core.models.outcomes import EnrollmentState, KeyPair
from vmsecureboot.core.models.system import SetupConfig
from vmsecureboot.core.persistence.files import atomic_write_bytes

logger = logging.getLogger(__name__)

# Phrases in ``mokutil --test-key`` output
ENROLLED_MARKER = "already enrolled"
PENDING_MARKER = "already in the enrollment request"

# Extended key usage restricting the key to kernel module signing
_CODE_SIGNING_OID = x509.ObjectIdentifier("1.3.6.1.4.1.2312.16.1.2")


def generate_key_cert_pair(
    common_name: str,
    valid_days: int,
    key_size: int = 2048,
) -> tuple[bytes, bytes]:
    """Generate a private key (PEM) and self-signed certificate (DER)."""
    now = datetime.datetime.now(datetime.timezone.utc)

    key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=valid_days))
        .serial_number(x509.random_serial_number())
        .public_key(key.public_key())
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CODE_SIGNING, _CODE_SIGNING_OID]),
            critical=False,
        )
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(key.public_key()),
            critical=False,
        )
        .sign(private_key=key, algorithm=hashes.SHA256())
    )

    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    cert_der = cert.public_bytes(encoding=serialization.Encoding.DER)
    return key_pem, cert_der


def ensure_keypair(config: SetupConfig) -> KeyPair:
    """Reuse the key pair on disk, or generate one.

    Raises:
        KeyStoreError: If the key directory or files cannot be written.
    """
    paths = config.paths
    priv = paths.resolve("private_key")
    cert = paths.resolve("certificate")

    if priv.is_file() and cert.is_file():
        logger.info("MOK key already exists at %s", priv.parent)
        return KeyPair(private_key=priv, certificate=cert, created=False)

    logger.info("Generating MOK key pair (CN=%s)", config.key_common_name)
    key_dir = paths.resolve("key_dir")
    try:
        key_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as e:
        raise KeyStoreError(f"Cannot create key directory {key_dir}: {e}") from e

    key_pem, cert_der = generate_key_cert_pair(
        config.key_common_name,
        config.key_validity_days,
        config.key_size,
    )

    try:
        atomic_write_bytes(priv, key_pem, mode=0o600)
        atomic_write_bytes(cert, cert_der, mode=0o644)
    except OSError as e:
        raise KeyStoreError(f"Cannot write key pair to {key_dir}: {e}") from e

    return KeyPair(private_key=priv, certificate=cert, created=True)


def enrollment_state(registry: AdapterRegistry, cert: Path) -> EnrollmentState | None:
    """Query firmware trust storage without changing anything.

    Returns None when the certificate is neither enrolled nor queued.
    """
    receipt = registry.run(
        "mok-test-key",
        ["mokutil", "--test-key", str(cert)],
        name="MOK enrollment check",
    )
    # mokutil exits non-zero for "already enrolled", so read the text, not the code
    text = receipt.combined_output
    if ENROLLED_MARKER in text:
        return EnrollmentState.ALREADY_ENROLLED
    if PENDING_MARKER in text:
        return EnrollmentState.PENDING
    return None


def ensure_enrolled(registry: AdapterRegistry, cert: Path) -> EnrollmentState:
    """Make sure the certificate is enrolled or queued for enrollment.

    ``NEWLY_REQUESTED`` and ``PENDING`` both mean the key is not trusted
    until the user reboots and confirms in the MOK Manager.

    Raises:
        EnrollmentError: If ``mokutil --import`` fails.
    """
    state = enrollment_state(registry, cert)
    if state is EnrollmentState.ALREADY_ENROLLED:
        logger.info("MOK key is already enrolled")
        return state
    if state is EnrollmentState.PENDING:
        logger.warning("MOK key enrollment is pending — reboot to confirm it")
        return state

    logger.info("Enrolling MOK key %s (one-time password prompt)", cert)
    receipt = registry.run(
        "mok-import",
        ["mokutil", "--import", str(cert)],
        interactive=True,
        name="MOK enrollment request",
    )
    if not receipt.ok:
        raise EnrollmentError(
            f"mokutil --import failed: {receipt.error or receipt.return_code}",
            hint="Re-run and enter the same one-time password twice.",
        )
    return EnrollmentState.NEWLY_REQUESTED
