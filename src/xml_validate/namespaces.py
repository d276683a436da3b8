"""Namespace definitions and KML conventions.

Based on the OGC KML 2.2 standard and the pre-OGC Google namespaces.
"""

# XML Schema instance namespace
XSI = "http://www.w3.org/2001/XMLSchema-instance"
XSD = "http://www.w3.org/2001/XMLSchema"

XSI_SCHEMA_LOCATION = f"{{{XSI}}}schemaLocation"
XSI_NO_NAMESPACE_SCHEMA_LOCATION = f"{{{XSI}}}noNamespaceSchemaLocation"

# KML namespaces
KML_20 = "http://earth.google.com/kml/2.0"
KML_21 = "http://earth.google.com/kml/2.1"
KML_22_BETA = "http://earth.google.com/kml/2.2"  # pre-OGC beta
KML_22 = "http://www.opengis.net/kml/2.2"
KML_EXT_22 = "http://www.google.com/kml/ext/2.2"

# Deprecated namespace -> current standard namespace
NAMESPACE_MIGRATIONS = {
    KML_22_BETA: KML_22,
}

# Root elements of un-namespaced documents treated as KML 2.0 in KML mode
KML_ROOT_ELEMENTS = frozenset(
    {
        "Placemark",
        "GroundOverlay",
        "NetworkLink",
        "ScreenOverlay",
        "PhotoOverlay",
    }
)

# Packaged container conventions
KMZ_CONTENT_TYPE = "application/vnd.google-earth.kmz"
KMZ_SUFFIX = ".kmz"
KML_SUFFIX = ".kml"
ZIP_MAGIC = b"PK"
