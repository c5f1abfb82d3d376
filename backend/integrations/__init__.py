"""
Trading-partner integration package.

X12 codec, document decoders, 850 encoder and pluggable file transports
for exchanging EDI documents with flooring vendors:
  - SFTP drop           (production; partner-hosted Inbox / Outbox)
  - Local directory     (development, tests)

Usage:
    from integrations import PartnerEDIConfig, get_transport

    config = PartnerEDIConfig.from_vendor_config(vendor.edi_config)
    async with get_transport(vendor.id, config) as transport:
        files = await transport.list(config.outbox_dir, config.file_extensions)
"""

from integrations.base import (
    PollStatus,
    PollSummary,
    RemoteFile,
    RemoteFileTransport,
    TransportType,
    get_transport,
    register_transport,
)
from integrations.edi_catalog import Catalog, CatalogItem, decode_832
from integrations.edi_documents import (
    DOCUMENT_DECODERS,
    DocumentType,
    decode_810,
    decode_850,
    decode_855,
    decode_856,
    decode_transaction_set,
    rollup_ack_status,
)
from integrations.edi_generator import build_850, plan_850_documents, split_by_surface
from integrations.filesystem_adapter import LocalDirectoryTransport
from integrations.partner_config import PartnerEDIConfig
from integrations.sftp_adapter import SFTPTransport
from integrations.x12 import parse_interchange, tokenize

__all__ = [
    "Catalog",
    "CatalogItem",
    "DOCUMENT_DECODERS",
    "DocumentType",
    "LocalDirectoryTransport",
    "PartnerEDIConfig",
    "PollStatus",
    "PollSummary",
    "RemoteFile",
    "RemoteFileTransport",
    "SFTPTransport",
    "TransportType",
    "build_850",
    "decode_810",
    "decode_832",
    "decode_850",
    "decode_855",
    "decode_856",
    "decode_transaction_set",
    "get_transport",
    "parse_interchange",
    "plan_850_documents",
    "register_transport",
    "rollup_ack_status",
    "split_by_surface",
    "tokenize",
]
