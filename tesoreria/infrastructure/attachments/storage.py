"""
Attachment storage for proofs of payment (comprobantes)

The lifecycle engine only sees the opaque reference returned by save().
"""
import logging
import os
import secrets
import time
from pathlib import Path
from typing import BinaryIO, Protocol

from tesoreria.config import get_settings
from tesoreria.domain.errors import ValidationError

logger = logging.getLogger(__name__)

_CHUNK = 64 * 1024


class AttachmentStore(Protocol):
    def save(self, organization_id: int, filename: str, stream: BinaryIO) -> str:
        """Persist the file and return an opaque reference."""
        ...

    def open(self, reference: str) -> BinaryIO:
        ...

    def delete(self, reference: str) -> None:
        """Remove a stored file. Unknown references are ignored."""
        ...


class LocalAttachmentStore:
    """
    Filesystem store: <base_dir>/<organization_id>/comprobante-<ts>-<rand><ext>

    Reference format: "<organization_id>/<file name>".
    """

    def __init__(
        self,
        base_dir: str | os.PathLike | None = None,
        max_bytes: int | None = None,
        allowed_extensions: list[str] | None = None,
    ):
        settings = get_settings()
        self.base_dir = Path(base_dir or settings.UPLOADS_DIR)
        self.max_bytes = max_bytes or settings.MAX_UPLOAD_BYTES
        self.allowed_extensions = [e.lower() for e in (allowed_extensions or settings.ALLOWED_PROOF_EXTENSIONS)]

    def save(self, organization_id: int, filename: str, stream: BinaryIO) -> str:
        ext = Path(filename or "").suffix.lower()
        if ext not in self.allowed_extensions:
            raise ValidationError(
                "Tipo de archivo no permitido. Use JPG, PNG, GIF, PDF o WebP.",
                fields={"comprobante": "Tipo de archivo no permitido"},
            )

        target_dir = self.base_dir / str(organization_id)
        target_dir.mkdir(parents=True, exist_ok=True)
        name = f"comprobante-{int(time.time() * 1000)}-{secrets.token_hex(6)}{ext}"
        target = target_dir / name

        written = 0
        try:
            with target.open("wb") as out:
                while True:
                    chunk = stream.read(_CHUNK)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self.max_bytes:
                        raise ValidationError(
                            "El archivo excede el tamaño máximo permitido",
                            fields={"comprobante": "Archivo demasiado grande"},
                        )
                    out.write(chunk)
        except Exception:
            target.unlink(missing_ok=True)
            raise

        if written == 0:
            target.unlink(missing_ok=True)
            raise ValidationError(
                "El comprobante de pago es obligatorio para ejecutar la solicitud",
                fields={"comprobante": "El archivo está vacío"},
            )

        logger.info("Stored proof %s (%d bytes)", name, written)
        return f"{organization_id}/{name}"

    def open(self, reference: str) -> BinaryIO:
        path = (self.base_dir / reference).resolve()
        if self.base_dir.resolve() not in path.parents:
            raise ValidationError("Referencia de archivo inválida")
        return path.open("rb")

    def delete(self, reference: str) -> None:
        """Remove a stored file; used when the surrounding transaction fails."""
        path = (self.base_dir / reference).resolve()
        if self.base_dir.resolve() in path.parents:
            path.unlink(missing_ok=True)
