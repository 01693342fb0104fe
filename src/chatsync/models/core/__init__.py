from .core_model import CoreModel, as_utc, optional_str, utcnow

__all__ = ["CoreModel", "as_utc", "optional_str", "utcnow"]
