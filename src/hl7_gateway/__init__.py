"""JSON <-> HL7v2 ORU^R01 conversion and delivery to external receivers."""

__version__ = "0.1.0"
