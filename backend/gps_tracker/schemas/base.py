from pydantic import BaseModel
from pydantic.alias_generators import to_camel

class CamelModel(BaseModel):
    """Base de los esquemas de la API: JSON en camelCase, atributos en snake_case."""

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True
