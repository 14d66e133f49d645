"""Error types raised while mirroring a Gmail label."""


class MirrorError(Exception):
    """Base for all label mirror errors."""


class RemoteUnavailable(MirrorError):
    """Gmail listing or detail fetch failed (network, expired auth, quota)."""


class StoreUnavailable(MirrorError):
    """The local mirror could not be read or written."""


class MalformedRecord(MirrorError):
    """A fetched message lacks the structure needed to extract its fields."""


__all__ = ["MirrorError", "RemoteUnavailable", "StoreUnavailable", "MalformedRecord"]
