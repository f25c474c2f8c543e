import uuid
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage


class BlobStore:
    """Opaque blob storage for payment proofs; the core keeps only the reference."""

    def __init__(self, storage=None, prefix='payment_proofs'):
        self.storage = storage or default_storage
        self.prefix = prefix

    def store(self, data, filename=None):
        extension = ''
        if filename and '.' in filename:
            extension = '.' + filename.rsplit('.', 1)[1].lower()[:10]
        name = f"{self.prefix}/{uuid.uuid4().hex}{extension}"
        return self.storage.save(name, ContentFile(data))

    def retrieve(self, ref):
        with self.storage.open(ref, 'rb') as blob:
            return blob.read()

    def exists(self, ref):
        return self.storage.exists(ref)

    def delete(self, ref):
        self.storage.delete(ref)
