from care_refresh.geo.geocoder import REGION_CENTROIDS, ZERO_POINT, GeocodeCache, Geocoder

__all__ = ["GeocodeCache", "Geocoder", "REGION_CENTROIDS", "ZERO_POINT"]
