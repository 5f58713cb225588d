from pydantic import BaseModel

# --- Error envelope ---
class ErrorBody(BaseModel):
    code: str
    message: str

class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorBody
