"""Page Gallery Ingestion Package."""

__version__ = "1.0.0"
__description__ = (
    "Gallery image ingestion with Pillow variants, local storage and DynamoDB registration"
)

__all__ = ["handlers", "core"]
