"""
Storage Service - Database operations for Projects, Scenes and Generations
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from scenegen.models.generation import GenerationModel, TERMINAL_STATUSES
from scenegen.models.project import (
    ErrorEventModel,
    ProfileModel,
    ProjectModel,
    PublicMirrorModel,
    ShotTypeModel,
)
from scenegen.models.scene import SceneModel


class ProjectDB:
    """Project database operations"""

    @staticmethod
    def create_project(db: Session, owner_id: str, name: str) -> ProjectModel:
        """Create a new project"""
        project = ProjectModel(owner_id=owner_id, name=name, scene_counter=0)
        db.add(project)
        db.commit()
        db.refresh(project)
        return project

    @staticmethod
    def get_project(db: Session, project_id: str) -> Optional[ProjectModel]:
        """Get project by ID"""
        return db.query(ProjectModel).filter(ProjectModel.id == project_id).first()

    @staticmethod
    def get_owned_project(db: Session, owner_id: str, project_id: str) -> Optional[ProjectModel]:
        """Get project by ID if it belongs to owner_id"""
        return (
            db.query(ProjectModel)
            .filter(ProjectModel.id == project_id, ProjectModel.owner_id == owner_id)
            .first()
        )

    @staticmethod
    def next_ordinal(db: Session, project_id: str, commit: bool = True) -> Optional[int]:
        """
        Atomically reserve the next scene ordinal for a project

        A single UPDATE ... RETURNING increments the counter, so concurrent
        callers always receive distinct, contiguous values.

        Args:
            db: Database session
            project_id: Project identifier
            commit: Commit immediately; pass False to commit together
                with the scene insert

        Returns:
            The new ordinal, or None if the project does not exist
        """
        stmt = (
            update(ProjectModel)
            .where(ProjectModel.id == project_id)
            .values(scene_counter=ProjectModel.scene_counter + 1)
            .returning(ProjectModel.scene_counter)
            .execution_options(synchronize_session=False)
        )
        ordinal = db.execute(stmt).scalar_one_or_none()
        if commit:
            db.commit()
        return ordinal


class ShotTypeDB:
    """Shot type database operations"""

    @staticmethod
    def create_shot_type(
        db: Session,
        name: str,
        prompt_template: str,
        owner_id: Optional[str] = None,
        sort_order: int = 0,
    ) -> ShotTypeModel:
        """Create a shot type (global when owner_id is None)"""
        shot_type = ShotTypeModel(
            owner_id=owner_id,
            name=name,
            prompt_template=prompt_template,
            sort_order=sort_order,
        )
        db.add(shot_type)
        db.commit()
        db.refresh(shot_type)
        return shot_type

    @staticmethod
    def get_for_owner(db: Session, owner_id: str, shot_type_id: str) -> Optional[ShotTypeModel]:
        """Get a shot type owned by owner_id or shared globally"""
        return (
            db.query(ShotTypeModel)
            .filter(
                ShotTypeModel.id == shot_type_id,
                or_(ShotTypeModel.owner_id == owner_id, ShotTypeModel.owner_id.is_(None)),
            )
            .first()
        )


class ProfileDB:
    """Profile database operations"""

    @staticmethod
    def upsert_profile(
        db: Session,
        user_id: str,
        status: str,
        email: Optional[str] = None,
    ) -> ProfileModel:
        """Create or update a profile"""
        profile = ProfileDB.get_profile(db, user_id)
        if profile is None:
            profile = ProfileModel(id=user_id, email=email, status=status)
            db.add(profile)
        else:
            profile.status = status
            if email is not None:
                profile.email = email
        db.commit()
        db.refresh(profile)
        return profile

    @staticmethod
    def get_profile(db: Session, user_id: str) -> Optional[ProfileModel]:
        """Get profile by user ID"""
        return db.query(ProfileModel).filter(ProfileModel.id == user_id).first()


class SceneDB:
    """Scene database operations"""

    @staticmethod
    def create_scene(
        db: Session,
        owner_id: str,
        project_id: str,
        ordinal: int,
        start_key: str,
        end_key: Optional[str],
        shot_type_id: str,
        status: str,
        commit: bool = True,
    ) -> SceneModel:
        """Create a new scene"""
        scene = SceneModel(
            owner_id=owner_id,
            project_id=project_id,
            ordinal=ordinal,
            version=1,
            start_key=start_key,
            end_key=end_key,
            shot_type_id=shot_type_id,
            status=status,
        )
        db.add(scene)
        if commit:
            db.commit()
            db.refresh(scene)
        else:
            db.flush()
        return scene

    @staticmethod
    def get_scene(db: Session, scene_id: str, include_deleted: bool = False) -> Optional[SceneModel]:
        """Get scene by ID (soft-deleted scenes hidden by default)"""
        query = db.query(SceneModel).filter(SceneModel.id == scene_id)
        if not include_deleted:
            query = query.filter(SceneModel.deleted_at.is_(None))
        return query.first()

    @staticmethod
    def get_owned_scene(
        db: Session,
        owner_id: str,
        scene_id: str,
        include_deleted: bool = False,
    ) -> Optional[SceneModel]:
        """Get scene by ID if it belongs to owner_id"""
        scene = SceneDB.get_scene(db, scene_id, include_deleted=include_deleted)
        if scene is None or scene.owner_id != owner_id:
            return None
        return scene

    @staticmethod
    def update_scene(db: Session, scene_id: str, **fields: Any) -> Optional[SceneModel]:
        """Update scene fields"""
        scene = SceneDB.get_scene(db, scene_id, include_deleted=True)
        if scene:
            for key, value in fields.items():
                setattr(scene, key, value)
            scene.updated_at = datetime.utcnow()
            db.commit()
            db.refresh(scene)
        return scene

    @staticmethod
    def soft_delete(db: Session, scene_id: str) -> Optional[SceneModel]:
        """Hide a scene without removing it"""
        return SceneDB.update_scene(db, scene_id, deleted_at=datetime.utcnow())

    @staticmethod
    def delete_scene(db: Session, scene_id: str) -> bool:
        """Delete a scene row"""
        scene = SceneDB.get_scene(db, scene_id, include_deleted=True)
        if scene:
            db.delete(scene)
            db.commit()
            return True
        return False


class GenerationDB:
    """Generation database operations"""

    @staticmethod
    def create_generation(
        db: Session,
        scene_id: str,
        version: int,
        status: str,
        idempotency_key: str,
        correlation_id: Optional[str] = None,
        commit: bool = True,
        dedupe: bool = False,
    ) -> GenerationModel:
        """Create a new generation (dedupe claims the in-flight slot for its key)"""
        generation = GenerationModel(
            generation_id=GenerationModel.generate_generation_id(),
            scene_id=scene_id,
            version=version,
            status=status,
            idempotency_key=idempotency_key,
            dedupe_key=idempotency_key if dedupe else None,
            correlation_id=correlation_id,
        )
        db.add(generation)
        if commit:
            db.commit()
            db.refresh(generation)
        else:
            db.flush()
        return generation

    @staticmethod
    def get_generation(db: Session, generation_id: str) -> Optional[GenerationModel]:
        """Get generation by ID"""
        return (
            db.query(GenerationModel)
            .filter(GenerationModel.generation_id == generation_id)
            .first()
        )

    @staticmethod
    def get_by_version(db: Session, scene_id: str, version: int) -> Optional[GenerationModel]:
        """Get a scene's generation by version number"""
        return (
            db.query(GenerationModel)
            .filter(GenerationModel.scene_id == scene_id, GenerationModel.version == version)
            .first()
        )

    @staticmethod
    def get_latest_for_scene(db: Session, scene_id: str) -> Optional[GenerationModel]:
        """Get the highest-version generation of a scene"""
        return (
            db.query(GenerationModel)
            .filter(GenerationModel.scene_id == scene_id)
            .order_by(GenerationModel.version.desc())
            .first()
        )

    @staticmethod
    def list_for_scene(db: Session, scene_id: str) -> List[GenerationModel]:
        """List a scene's generations, oldest first"""
        return (
            db.query(GenerationModel)
            .filter(GenerationModel.scene_id == scene_id)
            .order_by(GenerationModel.version.asc())
            .all()
        )

    @staticmethod
    def find_in_flight(db: Session, idempotency_key: str) -> Optional[GenerationModel]:
        """Get the newest non-terminal generation with this idempotency key"""
        return (
            db.query(GenerationModel)
            .filter(
                GenerationModel.idempotency_key == idempotency_key,
                GenerationModel.status.notin_(TERMINAL_STATUSES),
            )
            .order_by(GenerationModel.created_at.desc())
            .first()
        )

    @staticmethod
    def count_by_idempotency_key(db: Session, idempotency_key: str) -> int:
        """Count generations sharing an idempotency key"""
        return (
            db.query(GenerationModel)
            .filter(GenerationModel.idempotency_key == idempotency_key)
            .count()
        )

    @staticmethod
    def conditional_update(
        db: Session,
        generation_id: str,
        allowed_from: Iterable[str],
        values: Dict[str, Any],
    ) -> bool:
        """
        Update a generation only while its status is one of allowed_from

        Args:
            db: Database session
            generation_id: Generation identifier
            allowed_from: Statuses the row may currently be in
            values: Column values to set

        Returns:
            True if a row was updated
        """
        values = dict(values)
        values.setdefault("updated_at", datetime.utcnow())
        if values.get("status") in TERMINAL_STATUSES:
            values["dedupe_key"] = None
        stmt = (
            update(GenerationModel)
            .where(
                GenerationModel.generation_id == generation_id,
                GenerationModel.status.in_(list(allowed_from)),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = db.execute(stmt)
        db.commit()
        # Drop cached instances so later reads see the new row
        db.expire_all()
        return result.rowcount == 1

    @staticmethod
    def delete_for_scene(db: Session, scene_id: str) -> int:
        """Delete all generations of a scene"""
        deleted = (
            db.query(GenerationModel)
            .filter(GenerationModel.scene_id == scene_id)
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted


class MirrorDB:
    """Public mirror cache operations"""

    @staticmethod
    def get_by_source(db: Session, source_key: str) -> Optional[PublicMirrorModel]:
        """Get the cached mirror of a source object"""
        return (
            db.query(PublicMirrorModel)
            .filter(PublicMirrorModel.source_key == source_key)
            .first()
        )

    @staticmethod
    def create_mirror(
        db: Session,
        source_key: str,
        public_key: str,
        public_url: str,
    ) -> PublicMirrorModel:
        """Record a public mirror"""
        mirror = PublicMirrorModel(
            source_key=source_key,
            public_key=public_key,
            public_url=public_url,
        )
        db.add(mirror)
        db.commit()
        db.refresh(mirror)
        return mirror


class ErrorEventDB:
    """Error event database operations"""

    @staticmethod
    def record(
        db: Session,
        route: str,
        method: str,
        status: int,
        code: str,
        message: str,
        correlation_id: str,
        user_id: Optional[str] = None,
        safe_context: Optional[Dict[str, Any]] = None,
    ) -> ErrorEventModel:
        """Persist a request failure"""
        event = ErrorEventModel(
            route=route,
            method=method,
            status=status,
            code=code,
            message=message,
            correlation_id=correlation_id,
            user_id=user_id,
            safe_context=safe_context or {},
        )
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    @staticmethod
    def list_by_correlation_id(db: Session, correlation_id: str) -> List[ErrorEventModel]:
        """List error events for a correlation id"""
        return (
            db.query(ErrorEventModel)
            .filter(ErrorEventModel.correlation_id == correlation_id)
            .all()
        )
