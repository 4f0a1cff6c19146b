"""Static alias pairs that backfill canonical keys from loose input names."""

from __future__ import annotations

from collections.abc import Iterable, MutableMapping
from typing import Any

AliasPair = tuple[str, str]

# (source key, canonical key); applied in order, never overwriting.
ALIAS_PAIRS: tuple[AliasPair, ...] = (
    # cliente
    ("nombre", "cliente.nombre"),
    ("primer_nombre", "cliente.primer_nombre"),
    ("segundo_nombre", "cliente.segundo_nombre"),
    ("apellido", "cliente.apellido_paterno"),
    ("apellido_paterno", "cliente.apellido_paterno"),
    ("primer_apellido", "cliente.apellido_paterno"),
    ("apellido_materno", "cliente.apellido_materno"),
    ("segundo_apellido", "cliente.apellido_materno"),
    ("telefono", "cliente.telefono"),
    ("email", "cliente.email"),
    ("curp", "cliente.CURP"),
    ("rfc", "cliente.RFC"),
    ("fecha_nacimiento", "cliente.fecha_de_nacimiento"),
    # solicitud / evaluacion
    ("credito_solicitado", "solicitud.monto_solicitado"),
    ("plazo_solicitado", "solicitud.plazo_solicitado"),
    ("proposito_credito", "solicitud.proposito"),
    ("score_sumate", "evaluacion.score_sumate"),
    ("nivel_riesgo", "evaluacion.nivel_riesgo"),
    # direccion
    ("calle", "direccion.calle"),
    ("numero", "direccion.numero"),
    ("colonia", "direccion.colonia"),
    ("codigo_postal", "direccion.codigo_postal"),
    ("municipio", "direccion.municipio"),
    ("estado", "direccion.estado"),
    # trabajo
    ("empresa", "trabajo.empresa"),
    ("puesto", "trabajo.puesto"),
    ("salario", "trabajo.salario_mensual"),
    ("antiguedad", "trabajo.antiguedad_anos"),
    # referencias
    ("referencia1_nombre", "referencias.referencia1.nombre"),
    ("referencia1_telefono", "referencias.referencia1.telefono"),
    ("referencia2_nombre", "referencias.referencia2.nombre"),
    ("referencia2_telefono", "referencias.referencia2.telefono"),
    # flat identifiers
    ("expediente", "numero_de_expediente"),
    ("bc_score", "buro.BC_score"),
)


def apply_aliases(
    index: MutableMapping[str, Any],
    pairs: Iterable[AliasPair] = ALIAS_PAIRS,
) -> MutableMapping[str, Any]:
    """Copy ``source`` to ``target`` when target is absent and source present.

    Returns the same mapping for chaining. Existing targets always win, so an
    explicit value is never replaced by an alias-derived one.
    """

    for source_key, target_key in pairs:
        if target_key in index:
            continue
        if source_key in index:
            index[target_key] = index[source_key]
    return index
