"""Storage package utilities."""

__all__ = ["SegmentFile", "StorageManager", "StorageSettings", "probe"]


def __getattr__(name: str):
    if name in {"SegmentFile", "StorageManager", "StorageSettings"}:
        from storage import segments

        return getattr(segments, name)
    if name == "probe":
        from storage.diagnostics import probe

        return probe
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
