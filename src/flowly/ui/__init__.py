"""
UI module - Glue between the GraphStore and Qt-based renderers.

Import flowly.ui.signals explicitly; the core package never loads Qt.
"""
