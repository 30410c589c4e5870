from .core_model import CoreModel, new_id

__all__ = ["CoreModel", "new_id"]
