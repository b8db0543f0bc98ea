from pydantic import BaseModel, Field

class PageParams(BaseModel):
    page_size: int = Field(default=10, ge=1)
    page: int = Field(default=1, ge=1)

    @property
    def offset(self) -> int:
        return self.page_size * (self.page - 1)
