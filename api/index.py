"""
Vercel entry point for the Help-Desk API
"""
import os

# Set environment variables for serverless
os.environ.setdefault("ENVIRONMENT", "production")
os.environ.setdefault("SLA_CONFIG_PATH", "sla_config.yaml")

from mangum import Mangum

from helpdesk.main import app

# Routes depend on the event bus and SLA policy created at startup
handler = Mangum(app, lifespan="auto")
