"""
分类树模块 - 模板服务

模板拥有一棵独立的节点树，多个集合通过 TemplateBinding 共享它。
模板树每次结构变更（创建、移动、删除、恢复节点）版本号 +1 并保存一份结构快照；
绑定记录绑定时的版本，之后一直按该版本的快照解析，直到显式迁移。

使用示例:
    service = TemplateService()

    template = service.create_template("persona-stage", "Persona Stage Template")
    binding = service.bind_collection_to_template(collection.id, template.id)

    structure = service.resolve_structure(binding)
    service.migrate_binding(collection.id, template.id)
"""

from typing import List, Optional, Type

from sqlalchemy.exc import IntegrityError

from ytree.exceptions import Err, ErrorCode
from ytree.log import get_logger
from ytree.orm import get_user_id, transaction_manager
from ytree.utils import compute_checksum

from ..enums import OwnerKind
from ..exceptions import (
    BindingNotFound,
    NodeNotFound,
    OwnerNotFound,
    TemplateAlreadyBound,
    TemplateNotFound,
)
from ..models import CategoryNode, Collection, Template, TemplateBinding, TemplateVersion
from ..schemas import BindingMigration, TemplateBindingResponse

logger = get_logger("ytree.taxonomy.template")


class TemplateService:
    """模板服务

    模型类可在子类中替换（与节点服务相同的约定）。
    """

    template_model: Type[Template] = Template
    version_model: Type[TemplateVersion] = TemplateVersion
    binding_model: Type[TemplateBinding] = TemplateBinding
    node_model: Type[CategoryNode] = CategoryNode
    collection_model: Type[Collection] = Collection

    TEMPLATE_FIELDS = {"description", "template_type", "is_active", "meta_data"}

    # ==================== 模板 ====================

    def create_template(self, slug: str, name: str, **fields) -> Template:
        """创建模板，同时保存版本 1 的（空）结构快照"""
        unknown = set(fields) - self.TEMPLATE_FIELDS
        if unknown:
            raise Err.invalid(f"不支持的模板字段: {sorted(unknown)}", fields=sorted(unknown))

        with transaction_manager.transaction() as tx:
            exists = self.template_model.query.execution_options(include_deleted=True).filter(
                self.template_model.slug == slug
            ).first()
            if exists is not None:
                raise Err.conflict(f"模板 slug 已存在: {slug}", slug=slug)

            template = self.template_model(slug=slug, name=name, version=1, **fields)
            tx.session.add(template)
            tx.flush()
            self._write_snapshot(template)
            logger.info(f"创建模板: {template.slug} (id={template.id})")
            return template

    def get_template(self, template_id: int) -> Template:
        template = self.template_model.get(template_id)
        if template is None:
            raise TemplateNotFound(template_id)
        return template

    def get_template_by_slug(self, slug: str) -> Template:
        template = self.template_model.query.filter(self.template_model.slug == slug).first()
        if template is None:
            raise TemplateNotFound(slug)
        return template

    # ==================== 版本快照 ====================

    def snapshot_structure(self, template_id: int) -> List[dict]:
        """模板树当前所有未删除节点，按路径排序"""
        nodes = self.node_model.query.filter(
            self.node_model.owner_kind == OwnerKind.TEMPLATE,
            self.node_model.owner_id == template_id,
        ).order_by(self.node_model.path_key).all()
        return [
            {
                "id": n.id,
                "parent_id": n.parent_id,
                "slug": n.slug,
                "name": n.name,
                "depth": n.depth,
                "path": list(n.path or []),
            }
            for n in nodes
        ]

    def record_structure_change(self, template_id: int) -> Template:
        """模板树结构变更后调用：版本号 +1 并保存快照（与变更处于同一事务）"""
        with transaction_manager.transaction() as tx:
            template = self.template_model.query.filter(
                self.template_model.id == template_id
            ).with_for_update().first()
            if template is None:
                raise TemplateNotFound(template_id)
            tx.flush()
            template.version = (template.version or 0) + 1
            self._write_snapshot(template)
            logger.debug(f"模板 {template.slug} 结构版本 -> {template.version}")
            return template

    def _write_snapshot(self, template: Template) -> TemplateVersion:
        structure = self.snapshot_structure(template.id)
        snapshot = self.version_model(
            template_id=template.id,
            version=template.version,
            structure=structure,
            checksum=compute_checksum(structure),
        )
        snapshot.session.add(snapshot)
        snapshot.session.flush()
        return snapshot

    def list_versions(self, template_id: int) -> List[TemplateVersion]:
        self.get_template(template_id)
        return self.version_model.query.filter(
            self.version_model.template_id == template_id
        ).order_by(self.version_model.version).all()

    def get_version(self, template_id: int, version: int) -> TemplateVersion:
        snapshot = self.version_model.query.filter(
            self.version_model.template_id == template_id,
            self.version_model.version == version,
        ).first()
        if snapshot is None:
            raise Err.not_found(
                f"模板 {template_id} 不存在版本 {version}",
                code=ErrorCode.TEMPLATE_NOT_FOUND,
                template_id=template_id,
                version=version,
            )
        return snapshot

    # ==================== 绑定 ====================

    def bind_collection_to_template(
        self,
        collection_id: int,
        template_id: int,
        override_node_id: Optional[int] = None,
    ) -> TemplateBinding:
        """绑定集合与模板

        Args:
            collection_id: 集合ID
            template_id: 模板ID
            override_node_id: 可选，绑定固定到的模板节点

        Raises:
            OwnerNotFound: 集合不存在
            TemplateNotFound: 模板不存在
            TemplateAlreadyBound: 该集合已绑定此模板
            NodeNotFound: 固定节点不存在或不属于该模板
        """
        with transaction_manager.transaction() as tx:
            if self.collection_model.get(collection_id) is None:
                raise OwnerNotFound(OwnerKind.COLLECTION.value, collection_id)
            template = self.get_template(template_id)

            if self.find_binding(collection_id, template_id) is not None:
                raise TemplateAlreadyBound(collection_id, template_id)

            if override_node_id is not None:
                node = self.node_model.get(override_node_id)
                if node is None or node.owner_kind != OwnerKind.TEMPLATE or node.owner_id != template_id:
                    raise NodeNotFound(override_node_id, f"覆盖节点不存在或不属于模板 {template_id}")

            binding = self.binding_model(
                collection_id=collection_id,
                template_id=template_id,
                template_version=template.version,
                override_node_id=override_node_id,
                is_active=True,
            )
            try:
                with tx.savepoint():
                    tx.session.add(binding)
                    tx.session.flush()
            except IntegrityError as e:
                raise TemplateAlreadyBound(collection_id, template_id) from e

            logger.info(
                f"集合 {collection_id} 绑定模板 {template.slug} (version={template.version})"
            )
            return binding

    def find_binding(self, collection_id: int, template_id: int) -> Optional[TemplateBinding]:
        return self.binding_model.query.filter(
            self.binding_model.collection_id == collection_id,
            self.binding_model.template_id == template_id,
        ).first()

    def get_binding(self, collection_id: int, template_id: int) -> TemplateBinding:
        binding = self.find_binding(collection_id, template_id)
        if binding is None:
            raise BindingNotFound(collection_id, template_id)
        return binding

    def is_bound(self, collection_id: int, template_id: int) -> bool:
        binding = self.find_binding(collection_id, template_id)
        return binding is not None and binding.is_active

    def list_bindings(
        self,
        collection_id: Optional[int] = None,
        template_id: Optional[int] = None,
    ) -> List[TemplateBinding]:
        query = self.binding_model.query
        if collection_id is not None:
            query = query.filter(self.binding_model.collection_id == collection_id)
        if template_id is not None:
            query = query.filter(self.binding_model.template_id == template_id)
        return query.order_by(self.binding_model.id).all()

    def active_override_bindings(self, node_ids) -> List[TemplateBinding]:
        """固定到给定节点之一的有效绑定"""
        node_ids = list(node_ids)
        if not node_ids:
            return []
        return self.binding_model.query.filter(
            self.binding_model.override_node_id.in_(node_ids),
            self.binding_model.is_active.is_(True),
        ).all()

    def unbind(self, collection_id: int, template_id: int, actor: Optional[int] = None) -> TemplateBinding:
        """解除绑定（软删除绑定记录，之后可以重新绑定）"""
        with transaction_manager.transaction() as tx:
            binding = self.get_binding(collection_id, template_id)
            binding.soft_delete(actor if actor is not None else get_user_id(tx.session))
            tx.flush()
            logger.info(f"集合 {collection_id} 解除绑定模板 {template_id}")
            return binding

    def resolve_structure(self, binding: TemplateBinding) -> List[dict]:
        """按绑定记录的版本解析模板结构"""
        return list(self.get_version(binding.template_id, binding.template_version).structure)

    def migrate_binding(
        self,
        collection_id: int,
        template_id: int,
        to_version: Optional[int] = None,
    ) -> BindingMigration:
        """把绑定迁移到模板的另一个版本（默认最新版本）

        Returns:
            BindingMigration，包含两个版本之间消失和新增的节点ID

        Raises:
            BusinessException(VERSION_CONFLICT): 绑定固定的节点在目标版本中已不存在
        """
        with transaction_manager.transaction() as tx:
            binding = self.get_binding(collection_id, template_id)
            template = self.get_template(template_id)
            if to_version is None:
                to_version = template.version

            source = self.get_version(template_id, binding.template_version)
            target = self.get_version(template_id, to_version)
            source_ids, target_ids = source.node_ids(), target.node_ids()

            if binding.override_node_id is not None and binding.override_node_id not in target_ids:
                raise Err.conflict(
                    f"绑定固定的节点 {binding.override_node_id} 在版本 {to_version} 中已不存在",
                    code=ErrorCode.VERSION_CONFLICT,
                    override_node_id=binding.override_node_id,
                    to_version=to_version,
                )

            from_version = binding.template_version
            binding.template_version = to_version
            tx.flush()
            logger.info(
                f"集合 {collection_id} 的模板 {template.slug} 绑定迁移: v{from_version} -> v{to_version}"
            )
            return BindingMigration(
                binding=TemplateBindingResponse.model_validate(binding),
                from_version=from_version,
                to_version=to_version,
                removed_node_ids=sorted(source_ids - target_ids),
                added_node_ids=sorted(target_ids - source_ids),
            )
