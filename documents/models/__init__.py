from .base import StockDocument, DocumentLine, DRAFT, DONE, CANCELLED, TERMINAL_STATES
from .receipt import Receipt, ReceiptLine
from .delivery import Delivery, DeliveryLine
from .transfer import InternalTransfer, InternalTransferLine
from .adjustment import StockAdjustment, StockAdjustmentLine

# Document kind -> model. The kind doubles as the number series code.
DOCUMENT_MODELS = {
    model.KIND: model
    for model in (Receipt, Delivery, InternalTransfer, StockAdjustment)
}
