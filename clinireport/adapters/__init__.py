"""Adapters layer for CliniReport.

Adapters implement the ClinicalStorePort contract for concrete database
engines and load raw source files into the store.
"""
