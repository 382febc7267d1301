import math

'''
Knowledge module with helpers for earth based geo-spacial calculations.
'''

# mean earth radius
r_m = 6371008.8
r_km = 6371.0088

def haversine(px, py, r=r_m):
    '''
    Calculate the haversine distance between two points
    defined by (lat,lon) tuples.

    Args:
        px ((float,float)): lat/long position 1
        py ((float,float)): lat/long position 2
        r (float): Radius of sphere

    Returns:
        (float):  Distance in the units of r ( meters by default ).
    '''
    lat1, lon1 = px
    lat2, lon2 = py

    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    lat1 = math.radians(lat1)
    lat2 = math.radians(lat2)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.asin(min(1.0, math.sqrt(a)))

    return c * r

def pointlalo(geom):
    '''
    Return a (lat, lon) tuple from a GeoJSON style Point or [lon, lat] pair.

    Returns None if the value does not describe a point.
    '''
    if isinstance(geom, dict):
        if geom.get('type') != 'Point':
            return None
        geom = geom.get('coordinates')

    if not isinstance(geom, (list, tuple)) or len(geom) < 2:
        return None

    lon, lat = geom[0], geom[1]
    if not isnum(lon) or not isnum(lat):
        return None

    return (float(lat), float(lon))

def mkpoint(lat, lon, alt=None):
    '''
    Construct a GeoJSON style Point. Coordinates are in [lon, lat, alt?] order.
    '''
    coords = [lon, lat]
    if alt is not None:
        coords.append(alt)
    return {'type': 'Point', 'coordinates': coords}

def isnum(valu):
    return isinstance(valu, (int, float)) and not isinstance(valu, bool)
