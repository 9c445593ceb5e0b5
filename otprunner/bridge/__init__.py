"""Bridge layer between otp-runner and remote storage.

Modules
-------
transport
    ``Transport.fetch_if_absent()`` / ``Transport.put_file()`` over S3 (AWS
    CLI) and HTTP(S) (httpx), plus the cloud instance-id lookup used to
    prefix log uploads.
"""

from otprunner.bridge.transport import Backend, Transport, TransportError, select_backend

__all__ = ["Backend", "Transport", "TransportError", "select_backend"]
