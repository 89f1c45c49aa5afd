"""
routers/ — FastAPI route modules.

Each file contains a thin APIRouter. All business logic
lives in services/ and board/. Routers validate input, call
accessors, unwrap their Result and return the data.
"""
