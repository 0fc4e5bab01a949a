# Canned OCR output offered when the vision service is out of quota.
SAMPLE_PRESCRIPTION_TEXT = """**FREXT (100 mg)**

* **Dosage**: 1-0-0 tablet after breakfast
* **Duration**: One month

**CLOFRANIL (25 mg)**

* **Dosage**: 0-0-1 tablet at night
* **Duration**: One month

**SIZODON (MD 0.5)**

* **Dosage**: 1-0-1 tablet
* **Duration**: 2 weeks
"""
