"""
Shared — ワイヤーモデルの基底クラス

JSON は camelCase (productId, orderId …)、Python 側は snake_case。
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
