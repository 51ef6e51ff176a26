import math
import pandas as pd


class TagParseError(ValueError):
    """Raised when an OSM tag value cannot be read as a number."""

    def __init__(self, key, value):
        super().__init__(f'Unexpected value for tag "{key}": {value!r}')
        self.key = key
        self.value = value


def get_tag(tags, key):
    """
    Return the value of a tag, or None if the way does not carry it.
    """
    if not isinstance(tags, dict):
        return None
    value = tags.get(key)
    if value is None or (isinstance(value, float) and pd.isnull(value)):
        return None
    return str(value)


# Function to read a single numeric tag value, e.g. "110000" or " 1.2e5 "
def parse_number(value, key='value'):
    if value is None:
        raise TagParseError(key, value)

    try:
        number = float(str(value).strip())
    except ValueError:
        raise TagParseError(key, value) from None

    # "nan" and "inf" are accepted by float() but are no real tag values
    if not math.isfinite(number):
        raise TagParseError(key, value)
    return number


# Function to read a tag which may hold several values separated by ";"
def parse_number_list(value, key='value'):
    """
    Parse a tag as one number, falling back to a ";"-separated list.

    Parameters:
    - value (str): Raw tag value.
    - key (str): Tag name, only used for the error message.

    Returns:
    - list of float: One entry per value. Raises TagParseError if any part
      is not a number.
    """
    try:
        return [parse_number(value, key)]
    except TagParseError:
        if value is None or ';' not in str(value):
            raise

    return [parse_number(part, key) for part in str(value).split(';')]


def try_parse_number(value):
    """
    Like parse_number, but returns None instead of raising.
    """
    try:
        return parse_number(value)
    except TagParseError:
        return None


def format_voltage_kv(voltage):
    if pd.isnull(voltage):
        return 'unknown'
    kv = voltage / 1000
    return f'{kv:g} kV'
