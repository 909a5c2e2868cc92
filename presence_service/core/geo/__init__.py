# presence_service/core/geo/__init__.py
"""
Геометрия на сфере.
"""

from presence_service.core.geo.utils import calculate_distance, haversine_distance

__all__ = ["calculate_distance", "haversine_distance"]
