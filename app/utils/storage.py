from google.cloud import storage as gcs_storage
from app.config import get_settings

def get_storage_client():
    return gcs_storage.Client(project=get_settings().GCP_PROJECT_ID or None)

def get_bucket():
    client = get_storage_client()
    return client.bucket(get_settings().GCS_BUCKET_NAME)

def upload_file(path: str, file_bytes: bytes, content_type: str = "application/octet-stream") -> str:
    """Upload file to the GCS bucket. Returns the object's public URL."""
    bucket = get_bucket()
    blob = bucket.blob(path)
    blob.upload_from_string(file_bytes, content_type=content_type)
    return blob.public_url

def delete_file(path: str) -> None:
    """Delete a file from the GCS bucket."""
    bucket = get_bucket()
    blob = bucket.blob(path)
    blob.delete()

def object_path_from_url(url: str) -> str | None:
    """Return the object path for a public URL that points into our bucket."""
    prefix = f"https://storage.googleapis.com/{get_settings().GCS_BUCKET_NAME}/"
    if url and url.startswith(prefix):
        return url[len(prefix):]
    return None
