from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """
    基础 Schema
    配置:
    - alias_generator=to_camel: API JSON 使用 camelCase，Python 内部保持 snake_case
    - populate_by_name=True: 同时接受字段名与别名
    - from_attributes=True: 允许从 dataclass 实体读取
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        from_attributes=True,
        strict=False,
        populate_by_name=True,
        extra="ignore",
    )


class SuccessResponse(BaseSchema):
    success: bool = True


class ErrorResponse(BaseSchema):
    error: str
