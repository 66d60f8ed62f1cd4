"""
connectors — media store integrations.

Provides the uploader interface used for account images:
  • Upload of a local temp file → public URL
  • Best-effort delete by public id
  • Temp-file cleanup after every attempt

Each store (Cloudinary, …) is a subclass of BaseUploader.
"""
