"""
Slack Media Harvester – Archive media shared in a Slack channel.

Supports:
  • Walking a channel's history page by page from a start timestamp
  • Downloading image attachments and private file shares
  • Storing each unique file once on local disk or in MinIO/S3
  • Resumable operation via filename and content-hash deduplication
"""

__version__ = "1.0.0"
