"""Domain filters for library records (Unimarc dates, ISBD names, indexes)."""
import re
from typing import Dict, List

NOID_TABLE = "0123456789bcdfghjkmnpqrstvwxz"

HEMISPHERES = {"+": "N", "-": "S", "W": "W", "E": "E", "N": "N", "S": "S"}


def _int(text: str) -> int:
    """Leading integer of a string, like a lenient cast."""
    match = re.match(r"\s*([+-]?\d+)", text)
    return int(match.group(1)) if match else 0


def date_iso(value: str) -> str:
    """
    Convert a Unimarc packed date to ISO 8601.

    "d1605110512" gives "1605-11-05T12". Values with unknown digits ("u") are
    kept, as well as values that do not start with a digit or an era marker.
    """
    if not value or "u" in value:
        return value

    first = value[0]
    if not (first.isdigit() or first in "-+cd "):
        return value

    prefix = ""
    if first in "-+cd ":
        prefix = "-" if first in "-c" else ""
        value = value[1:]

    result = (
        f"{prefix}{value[0:4]}-{value[4:6]}-{value[6:8]}"
        f"T{value[8:10]}:{value[10:12]}:{value[12:14]}"
    )
    return result.rstrip("-:T |#")


def date_revert(value: str) -> str:
    """Convert a day/month/year spreadsheet date to ISO ("dd/mm/yy" gives "20yy-mm-dd")."""
    value = value.strip()
    separator = re.search(r"\D", value)

    if separator:
        parts = value.split(separator.group(0))
        parts = [p for p in parts if p != ""] + ["", "", ""]
        day, month, year = parts[0], parts[1], parts[2]
        if len(year) == 2:
            year = "20" + year
        return f"{_int(year):04d}-{_int(month):02d}-{_int(day):02d}"

    year = "20" + value[4:6] if len(value) == 6 else value[4:8]
    return f"{year}-{value[2:4]}-{value[0:2]}"


def date_sql(value: str) -> str:
    """Convert a Unimarc 005 timestamp ("19850901141236.0") to a SQL datetime."""
    value = value.strip()
    return (
        f"{value[0:4]}-{value[4:6]}-{value[6:8]}"
        f" {value[8:10]}:{value[10:12]}:{value[12:14]}"
    )


def isbd_name(arga: Dict[str, str]) -> str:
    """Format a person name (Unimarc 700 and following) with ISBD punctuation."""
    a, b, c, d = arga["a"], arga["b"], arga["c"], arga["d"]
    f, g, k = arga["f"], arga["g"], arga["k"]
    o, p, inst = arga["o"], arga["p"], arga["5"]

    if f:
        qualifier = f" ({f}" + (f" ; {c}" if c else "") + (f" ; {k}" if k else "") + ")"
    elif c:
        qualifier = f" ({c}" + (f" ; {k}" if k else "") + ")"
    else:
        qualifier = f" ({k})" if k else ""

    return (
        a
        + (f", {b}" if b else "")
        + (f" ({g})" if g else "")
        + (f", {d}" if d else "")
        + qualifier
        + (f" {{{o}}}" if o else "")
        + (f", {p}" if p else "")
        + (f", {inst}" if inst else "")
    )


def isbd_name_coll(arga: Dict[str, str]) -> str:
    """Format an organization name (Unimarc 710/720/740) with ISBD punctuation."""
    a, b, c, d, e = arga["a"], arga["b"], arga["c"], arga["d"], arga["e"]
    f, g, h = arga["f"], arga["g"], arga["h"]
    o, p, r, inst = arga["o"], arga["p"], arga["r"], arga["5"]

    if g:
        rejected = f" ({g}" + (f" ; {h}" if h else "") + ")"
    else:
        rejected = f" ({h})" if h else ""

    if f:
        meeting = f" ({f}" + (f" ; {c}" if c else "") + ")"
    else:
        meeting = f" ({c})" if c else ""

    return (
        a
        + (f", {b}" if b else "")
        + rejected
        + (f", {d}" if d else "")
        + (f", {e}" if e else "")
        + meeting
        + (f" {{{o}}}" if o else "")
        + (f", {p}" if p else "")
        + (f", {r}" if r else "")
        + (f", {inst}" if inst else "")
    )


def isbd_mark(arga: Dict[str, str]) -> str:
    """Format a trade mark (Unimarc 716)."""
    return (
        arga["a"]
        + (f", {arga['b']}" if arga["b"] else "")
        + (f" ({arga['c']})" if arga["c"] else "")
    )


def noid_check_bnf(value: str) -> str:
    """
    Compute the noid check character used by BnF ark identifiers.

    Unlike the noid recommendation, the naan is not part of the checked
    string.
    """
    total = sum(
        (NOID_TABLE.index(char) if char in NOID_TABLE else 0) * (position + 1)
        for position, char in enumerate(value)
    )
    return NOID_TABLE[total % len(NOID_TABLE)]


def unimarc_index(value: str, arga: List[str]) -> str:
    """Build an index label or uri ("rameau" gives a data.bnf.fr ark)."""
    index = arga[0] if arga else ""
    if not index:
        return value

    code = value if len(arga) == 1 else arga[1]

    if index == "unimarc/a":
        return f"Unimarc/A : {code}"
    if index == "rameau":
        return f"https://data.bnf.fr/ark:/12148/cb{code}{noid_check_bnf('cb' + code)}"
    return f"{index} : {code}"


def unimarc_coordinates(value: str) -> str:
    """Convert coordinates like "w0241207" to "W 24°12'7\""."""
    hemisphere = HEMISPHERES.get(value[:1].upper(), "?")
    return (
        f"{hemisphere} {_int(value[1:4])}°{_int(value[4:6])}'{_int(value[6:8])}\""
    )


def unimarc_coordinates_hexa(value: str) -> str:
    """Convert packed coordinates like "451230" to "45°12'30\""."""
    return f"{value[0:2]}°{value[2:4]}'{value[4:6]}\""


def unimarc_time_hexa(value: str) -> str:
    """Convert a packed duration like "150027" to "15h0m27s"."""
    hours = _int(value[0:2].strip())
    minutes = _int(value[2:4].strip())
    seconds = _int(value[4:6].strip())

    result = f"{hours}h" if hours else ""
    if minutes:
        result += f"{minutes}m"
    elif hours and seconds:
        result += "0m"
    if seconds:
        result += f"{seconds}s"
    return result
