from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())


class TaskCreateRequest(CamelModel):
    task_type: str = Field(..., alias='taskType', description="任务类型")
    model_info: Optional[Union[Dict[str, Any], str]] = Field(None, alias='modelInfo')
    language: str = 'zh-CN'
    detail: str = ''
    note: Optional[Union[Dict[str, Any], str]] = Field(None, description="任务参数，例如文件列表、处理策略")
    total_count: int = Field(0, ge=0, alias='totalCount')


class TaskStatusUpdateRequest(CamelModel):
    status: int = Field(..., description="目标状态，3 表示中断")


class DistillTagsRequest(CamelModel):
    parent_tag: str = Field(..., alias='parentTag')
    parent_tag_id: Optional[str] = Field(None, alias='parentTagId')
    tag_path: Optional[str] = Field(None, alias='tagPath')
    count: int = Field(10, ge=1, le=100)
    model: Dict[str, Any]
    language: str = 'zh-CN'


class DistillQuestionsRequest(CamelModel):
    tag_path: str = Field(..., alias='tagPath')
    current_tag: str = Field(..., alias='currentTag')
    tag_id: Optional[str] = Field(None, alias='tagId')
    count: int = Field(10, ge=1, le=100)
    model: Dict[str, Any]
    language: str = 'zh-CN'


class DatasetGenerateRequest(CamelModel):
    question_id: str = Field(..., alias='questionId')
    model: Dict[str, Any]
    language: str = 'zh-CN'


class GaPairGenerateRequest(CamelModel):
    model_config_id: str = Field(..., alias='modelConfigId')
    language: str = 'zh-CN'
    regenerate: bool = False
    append_mode: bool = Field(False, alias='appendMode')


class GaPairBatchRequest(CamelModel):
    file_ids: List[str] = Field(..., alias='fileIds', min_length=1)
    model_config_id: str = Field(..., alias='modelConfigId')
    language: str = 'zh-CN'
    append_mode: bool = Field(False, alias='appendMode')


class GaPairText(BaseModel):
    title: str
    description: str = ''


class GaPairItem(CamelModel):
    genre: GaPairText
    audience: GaPairText
    is_active: bool = Field(True, alias='isActive')


class GaPairSaveRequest(CamelModel):
    ga_pairs: List[GaPairItem] = Field(..., alias='gaPairs')


class GaPairToggleRequest(CamelModel):
    pair_id: str = Field(..., alias='pairId')
    is_active: bool = Field(..., alias='isActive')
