import logging
import os
import random
import time
from datetime import datetime

from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)

NOTES_SUBDIR = 'notes'
ALLOWED_IMAGE_TYPES = ('jpeg', 'jpg', 'png', 'gif', 'webp')


class UploadError(ValueError):
    pass


class AttachmentStorage:
    """Stores note images on disk under ``<root>/notes``."""

    def __init__(self, root, max_files=5, max_size=5 * 1024 * 1024):
        self.root = root
        self.max_files = max_files
        self.max_size = max_size

    @property
    def notes_dir(self):
        return os.path.join(self.root, NOTES_SUBDIR)

    def public_path(self, filename):
        return f"/uploads/{NOTES_SUBDIR}/{filename}"

    @staticmethod
    def is_allowed_image(filename, mimetype):
        extension = os.path.splitext(filename or '')[1].lower().lstrip('.')
        subtype = (mimetype or '').split('/')[-1].lower()
        return extension in ALLOWED_IMAGE_TYPES and subtype in ALLOWED_IMAGE_TYPES

    def validate(self, files):
        files = [f for f in files if f and f.filename]
        if len(files) > self.max_files:
            raise UploadError(f"At most {self.max_files} images are allowed")
        for file in files:
            if not self.is_allowed_image(file.filename, file.mimetype):
                raise UploadError('Only image files are allowed!')
            size = self._size_of(file)
            if size > self.max_size:
                raise UploadError(f"Image '{file.filename}' exceeds the {self.max_size // (1024 * 1024)}MB limit")
        return files

    @staticmethod
    def _size_of(file):
        stream = file.stream
        position = stream.tell()
        stream.seek(0, os.SEEK_END)
        size = stream.tell()
        stream.seek(position)
        return size

    def save_all(self, files):
        """Validate and write uploads, returning their attachment descriptors.

        Nothing is written unless every file passes validation.
        """
        files = self.validate(files)
        os.makedirs(self.notes_dir, exist_ok=True)

        descriptors = []
        written = []
        try:
            for file in files:
                extension = os.path.splitext(secure_filename(file.filename))[1].lower()
                filename = f"{int(time.time() * 1000)}-{random.randint(0, 10 ** 9)}{extension}"
                written.append(filename)
                file.save(os.path.join(self.notes_dir, filename))
                descriptors.append({
                    "filename": filename,
                    "path": self.public_path(filename),
                    "uploadedAt": datetime.now().isoformat(),
                })
        except Exception:
            # a failed write may leave a partial file behind
            self.delete_all(written)
            raise
        return descriptors

    def delete(self, filename):
        """Best-effort removal; failures are logged and reported as False."""
        path = os.path.join(self.notes_dir, secure_filename(filename))
        try:
            os.remove(path)
        except OSError as e:
            logger.error(f"Error deleting file {path}: {e}")
            return False
        return True

    def delete_all(self, filenames):
        for filename in filenames:
            self.delete(filename)
