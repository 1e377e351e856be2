"""Source parsers for the spreadsheet (CSV) and map (KML) exports."""
from bidetmap.parsers.sheet_parser import parse_bool, parse_sheet_csv
from bidetmap.parsers.kml_parser import extract_address, parse_kml

__all__ = ["parse_bool", "parse_sheet_csv", "extract_address", "parse_kml"]
