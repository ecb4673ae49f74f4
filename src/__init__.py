"""Receipt OCR System.

A receipt recognition pipeline combining OpenCV preprocessing, an ensemble
of Tesseract engines, and rule-based field extraction to turn photographed
or scanned receipts into validated purchase records.
"""
