import warnings
from pydantic import BaseModel
from schemas import CamelModel, TaskCreateRequest


def test_request_accepts_alias_and_field_name():
    by_alias = TaskCreateRequest(taskType='pdf-processing', modelInfo={'model_id': 'm'})
    by_name = TaskCreateRequest(task_type='pdf-processing', model_info='{"model_id": "m"}')

    assert by_alias.task_type == by_name.task_type == 'pdf-processing'
    assert by_alias.model_info == {'model_id': 'm'}


def test_subclass_definition_emits_no_deprecation_warning():
    with warnings.catch_warnings():
        warnings.simplefilter('error')

        class ModelRequest(CamelModel):
            model_id: str

    assert ModelRequest(model_id='m').model_id == 'm'
    assert issubclass(ModelRequest, BaseModel)
