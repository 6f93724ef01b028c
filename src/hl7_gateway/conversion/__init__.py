from .converter import JsonHL7Converter
from .validator import InputValidator

__all__ = ["JsonHL7Converter", "InputValidator"]
