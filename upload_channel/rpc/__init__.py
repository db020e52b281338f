"""RPC adapters connecting write channels to remote upload endpoints."""

from upload_channel.rpc.http_upload_rpc import HttpUploadRpc
from upload_channel.rpc.upload_rpc import UploadRpc

__all__ = ["HttpUploadRpc", "UploadRpc"]
