"""
Service Layer for speechmagic.

This package holds the business logic between the API layer and the
provider/storage/ledger components:

    - generation_service.py: GenerationService pipeline orchestrator
    - errors.py: Error codes and exception hierarchy
    - validators.py: Text, filename and pagination validation

Modules are imported directly (speechmagic.services.generation_service)
because the tts and db layers depend on errors and validators.
"""
