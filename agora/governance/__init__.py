# agora/governance/__init__.py

# Suggestion -> referendum promotion and majority-resolution engine
