#!/usr/bin/env python3

import factory

from btm_migrator.models.lml_model import MappingNode, TranslatedMap
from btm_migrator.models.map_model import PARAM_CONSTANT, PARAM_LINK, Edge, Parameter, TransformNode


class ParameterFactory(factory.Factory):
    """Factory for functoid parameters"""

    class Meta:
        model = Parameter

    kind = PARAM_LINK
    value = factory.Sequence(lambda n: f"{n + 1}")
    order = factory.Sequence(lambda n: n)


class ConstantParameterFactory(ParameterFactory):
    kind = PARAM_CONSTANT
    value = "constant"


class TransformNodeFactory(factory.Factory):
    """Factory for functoids"""

    class Meta:
        model = TransformNode

    id = factory.Sequence(lambda n: f"{n + 100}")
    kind = "StringConcatenate"
    type_code = "107"
    parameters = factory.LazyFunction(list)


class EdgeFactory(factory.Factory):
    """Factory for links"""

    class Meta:
        model = Edge

    id = factory.Sequence(lambda n: f"{n + 1}")
    from_id = factory.Sequence(lambda n: f"/*[local-name()='<Schema>']/*[local-name()='Source']/*[local-name()='Field{n}']")
    to_id = factory.Sequence(lambda n: f"/*[local-name()='<Schema>']/*[local-name()='Target']/*[local-name()='Field{n}']")


class MappingNodeFactory(factory.Factory):
    """Factory for mapping forest nodes"""

    class Meta:
        model = MappingNode

    target_path = factory.Sequence(lambda n: f"Field{n}")
    source_expression = factory.Sequence(lambda n: f"/ns0:Source/Field{n}")


class TranslatedMapFactory(factory.Factory):
    """Factory for translated maps ready to emit"""

    class Meta:
        model = TranslatedMap

    source_schema = "Source.xsd"
    target_schema = "Target.xsd"
    source_namespaces = factory.LazyFunction(lambda: {"ns0": "http://example.com/source"})
    target_namespaces = factory.LazyFunction(lambda: {"ns0": "http://example.com/target"})
    mappings = factory.LazyFunction(list)
