"""HTTP API — FastAPI app, request/response models, and the job store."""
