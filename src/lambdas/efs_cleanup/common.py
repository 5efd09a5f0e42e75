import os, re
from urllib.parse import unquote

DEFAULT_MOUNT_ROOT = "/mnt/efs/"
TARGET_EXTENSION = ".gz"

# a '%' that does not start a two-digit hex escape
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")

def env(name: str, default: str = "") -> str:
    return os.environ.get(name, default)

def with_trailing_slash(root: str) -> str:
    # keys are appended directly, "/mnt/efs" would give "/mnt/efsx.gz"
    return root if root.endswith("/") else root + "/"

def mount_root() -> str:
    return with_trailing_slash(env("EFS_MOUNT_PATH", DEFAULT_MOUNT_ROOT))

def decode_key(key: str) -> str:
    """
    S3 event keys carry '+' for a space and percent-escapes for the rest.
    The '+' pass has to run first, otherwise an escaped '%2B' would come
    back as a space.
    """
    plain = key.replace("+", " ")
    if _BAD_ESCAPE.search(plain):
        raise ValueError(f"malformed percent-escape in key {key!r}")
    return unquote(plain, encoding="utf-8", errors="strict")

def resolve_path(root: str, decoded_key: str) -> str:
    # plain concatenation, the root carries its own trailing slash
    return root + decoded_key

def is_within(path: str, root: str) -> bool:
    root = os.path.abspath(root)
    target = os.path.abspath(path)
    return target != root and os.path.commonpath([root, target]) == root

def file_extension(path: str) -> str:
    return os.path.splitext(path)[1]
