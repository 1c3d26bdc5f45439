from .book import SHARD_SIZE_THRESHOLD, Book, SaveResult, ShardEvent
from .errors import (
    ConnectivityError,
    HttpStatusError,
    MalformedShardError,
    ProtocolError,
    ScrapbookError,
    ServerError,
    TokenAcquisitionError,
    UnknownCollectionError,
)
from .options import ClientOptions, OptionsError, load_options
from .server import BookConfig, Server, ServerConfig
from .transport import FormFile, RequestsTransport, Transport, TransportError, TransportResponse
from .treefile import generate_tree_file, parse_tree_file, shard_filename

__all__ = [
    "Book",
    "BookConfig",
    "ClientOptions",
    "ConnectivityError",
    "FormFile",
    "HttpStatusError",
    "MalformedShardError",
    "OptionsError",
    "ProtocolError",
    "RequestsTransport",
    "SHARD_SIZE_THRESHOLD",
    "SaveResult",
    "ScrapbookError",
    "Server",
    "ServerConfig",
    "ServerError",
    "ShardEvent",
    "TokenAcquisitionError",
    "Transport",
    "TransportError",
    "TransportResponse",
    "UnknownCollectionError",
    "generate_tree_file",
    "load_options",
    "parse_tree_file",
    "shard_filename",
]
