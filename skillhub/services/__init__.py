# skillhub/services/__init__.py
