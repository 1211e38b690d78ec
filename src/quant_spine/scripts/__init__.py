"""Analytics scripts run by the step dispatcher.

These files are read as text and executed by the configured external
interpreter (``QUANTSPINE_PYTHON_PATH``), never imported by the engine.
Each one reads a JSON configuration from stdin and prints exactly one JSON
object with a boolean ``success`` key.  Their libraries (pyqlib, pandas,
lightgbm, scikit-learn, matplotlib) come from the ``analytics`` extra.
"""
