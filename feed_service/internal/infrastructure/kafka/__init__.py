"""
Kafka infrastructure for the Feed Service.
"""
from .catalog_publisher import KafkaCatalogPublisher

__all__ = ["KafkaCatalogPublisher"]
