from typing import Dict, List, Optional
from database.base import DatabaseManager
from database.models import Question, Dataset, Chunk
from database.file_manager import DISTILL_CHUNK_NAME
from utils.logger import get_logger

logger = get_logger('question_manager', 'business')


class QuestionManager(DatabaseManager):
    """问题与数据集数据库管理器"""

    def save_questions(self, project_id: str, chunk_id: str, questions: List[Dict]) -> List[Dict]:
        """批量保存问题，questions 元素为 {"question": ..., "label": ...}"""
        with self.session_scope() as db:
            saved = []
            for item in questions:
                question = Question(
                    project_id=project_id,
                    chunk_id=chunk_id,
                    question=item['question'],
                    label=item.get('label')
                )
                db.add(question)
                saved.append(question)
            db.flush()
            result = [q.to_dict() for q in saved]
        logger.info(f"保存问题: project={project_id}, chunk={chunk_id}, 共 {len(result)} 个")
        return result

    def get_question(self, question_id: str) -> Optional[Dict]:
        with self.session_scope() as db:
            question = db.query(Question).filter(Question.id == question_id).first()
            return question.to_dict() if question else None

    def get_questions_by_label(self, project_id: str, label: str) -> List[Dict]:
        with self.session_scope() as db:
            questions = db.query(Question).filter(
                Question.project_id == project_id,
                Question.label == label
            ).order_by(Question.create_at).all()
            return [q.to_dict() for q in questions]

    def get_questions(self, project_id: str, answered: Optional[bool] = None) -> List[Dict]:
        with self.session_scope() as db:
            query = db.query(Question).filter(Question.project_id == project_id)
            if answered is not None:
                query = query.filter(Question.answered == answered)
            return [q.to_dict() for q in query.order_by(Question.create_at).all()]

    def get_distill_questions(self, project_id: str) -> List[Dict]:
        """蒸馏问题：挂在 Distilled Content 文本块下的问题"""
        with self.session_scope() as db:
            chunk = db.query(Chunk).filter(
                Chunk.project_id == project_id,
                Chunk.name == DISTILL_CHUNK_NAME
            ).first()
            if not chunk:
                return []
            questions = db.query(Question).filter(
                Question.project_id == project_id,
                Question.chunk_id == chunk.id
            ).order_by(Question.create_at).all()
            return [q.to_dict() for q in questions]

    def get_chunk_ids_with_questions(self, project_id: str) -> set:
        with self.session_scope() as db:
            rows = db.query(Question.chunk_id).filter(Question.project_id == project_id).distinct().all()
            return {row[0] for row in rows}

    def save_dataset(self, project_id: str, question: Dict, answer: str, cot: str = '',
                     model: Optional[str] = None) -> Dict:
        """保存数据集条目并把问题标记为已回答"""
        with self.session_scope() as db:
            dataset = Dataset(
                project_id=project_id,
                question_id=question['id'],
                question=question['question'],
                answer=answer,
                cot=cot,
                question_label=question.get('label'),
                chunk_id=question.get('chunk_id'),
                model=model
            )
            db.add(dataset)
            db.query(Question).filter(Question.id == question['id']).update({Question.answered: True})
            db.flush()
            result = dataset.to_dict()
        logger.info(f"保存数据集: project={project_id}, question={question['id']}")
        return result

    def get_datasets(self, project_id: str) -> List[Dict]:
        with self.session_scope() as db:
            datasets = db.query(Dataset).filter(Dataset.project_id == project_id).order_by(Dataset.create_at).all()
            return [d.to_dict() for d in datasets]
