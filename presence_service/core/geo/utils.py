# presence_service/core/geo/utils.py
import math

from presence_service.common.constants import EARTH_RADIUS_KM
from presence_service.shared.models.user import Coordinates


def calculate_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
    earth_radius_km: float = EARTH_RADIUS_KM,
) -> float:
    """
    Вычисляет расстояние между двумя точками (в км) по формуле Haversine.

    Земля считается шаром радиуса earth_radius_km, поправки на эллипсоид
    и высоту не вносятся. Углы вне обычных диапазонов приводятся по модулю
    360°, поэтому любые конечные значения дают конечное расстояние.
    Нечисловые значения (NaN, бесконечность) дают math.inf.
    """
    if not all(math.isfinite(value) for value in (lat1, lon1, lat2, lon2)):
        return math.inf

    # Разность приведённых углов не переполняется
    lat1, lon1, lat2, lon2 = (math.fmod(value, 360.0) for value in (lat1, lon1, lat2, lon2))

    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlon / 2) ** 2)

    # Погрешность округления может дать a чуть больше 1
    a = min(1.0, max(0.0, a))

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return earth_radius_km * c


def haversine_distance(
    a: Coordinates,
    b: Coordinates,
    earth_radius_km: float = EARTH_RADIUS_KM,
) -> float:
    """Расстояние между двумя Coordinates в км."""
    return calculate_distance(a.latitude, a.longitude, b.latitude, b.longitude, earth_radius_km)
