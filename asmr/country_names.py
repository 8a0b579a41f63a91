"""Display names for the country codes used by the HMD STMF series."""

import pycountry

# HMD codes for national subdivisions and series that are not plain ISO.
HMD_NAMES = {
    "DEUTNP": "Germany",
    "FRATNP": "France",
    "GBRTENW": "England & Wales",
    "GBR_NIR": "Northern Ireland",
    "GBR_SCO": "Scotland",
    "NZL_NP": "New Zealand",
    "TWN": "Taiwan",
    "CZE": "Czech Republic",
}


def country_name(code):
    """Returns a readable name for code, or code itself if unknown."""

    name = HMD_NAMES.get(code)
    if name:
        return name

    country = pycountry.countries.get(alpha_3=code)
    if country is None:
        return code
    return getattr(country, "common_name", country.name)
