"""Workbook reading helpers built on openpyxl."""
