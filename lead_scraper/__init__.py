"""
Lead Scraper - Google Maps business leads to Excel.

scraper.py collects and enriches listings, validator.py cleans them,
excel.py writes the workbook and jobs.py ties it together behind app.py.
"""

__version__ = '1.0.0'
