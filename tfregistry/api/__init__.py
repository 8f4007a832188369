"""Registry HTTP API (FastAPI).

``create_app`` builds the application serving the Terraform module and
provider registry protocols on top of the materialization cache.
"""
