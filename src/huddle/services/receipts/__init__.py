from .service import ReadReceiptService

__all__ = ["ReadReceiptService"]
