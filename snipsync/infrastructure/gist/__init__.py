from .gist_client import GitHubGistClient, IGistClient, RemoteDocument, translate_error  # noqa: F401
from .gist_document_codec import DecodedDocument, GistDecodeError, GistDocumentCodec  # noqa: F401
from .gist_mapping_store import GistLink, GistMappingStore  # noqa: F401
from .gist_replica_channel import GistReplicaChannel  # noqa: F401
