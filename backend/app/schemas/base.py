"""camelCase schema bases.

Python code stays snake_case; JSON in and out is camelCase, matching what
the upload client sends (relativePath, folderPath, mimeType...).
"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CamelORMModel(CamelModel):
    """Built from SQLAlchemy rows via model_validate."""
    model_config = ConfigDict(from_attributes=True)


class Envelope(CamelModel):
    """Every successful response carries success: true."""
    success: bool = True
