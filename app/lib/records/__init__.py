DEFAULT_RECORD_CONTRACT_VERSION = "v1"
DEFAULT_RECORD_COMPAT_POLICY = "strict"


def build_record_codec(*args: object, **kwargs: object):
    from app.lib.records.factory import build_record_codec as _build_record_codec

    return _build_record_codec(*args, **kwargs)


__all__ = ["DEFAULT_RECORD_CONTRACT_VERSION", "DEFAULT_RECORD_COMPAT_POLICY", "build_record_codec"]
