# workers/__init__.py
