import knowledge.lib.const as k_const

draft07 = 'http://json-schema.org/draft-07/schema#'

def schemaid(name, namespace='core', version='1.0.0'):
    return f'ka://schemas/{namespace}/{name}/{version}'

def _ref(name):
    return {'$ref': schemaid(name)}

_dateTime = {'type': 'string', 'format': 'date-time'}
_strList = {'type': 'array', 'items': {'type': 'string'}}

metaSchema = {
    '$id': schemaid('meta'),
    '$schema': draft07,
    'name': 'meta',
    'namespace': 'core',
    'version': '1.0.0',
    'description': 'COMPONENT: Common metadata about an entity.',
    'type': 'object',
    'properties': {
        'slug': {'type': 'string', 'minLength': 1, 'description': 'URL safe identifier.'},
        'label': {'type': 'string', 'description': 'Human readable label / title.'},
        'content': {'type': 'string', 'description': 'Primary body or notes (markdown ok).'},
        'depiction': {'type': 'string', 'format': 'uri', 'description': 'Image URL.'},
        'view': {'type': 'string', 'description': 'Preferred UI / view hint.'},
        'tags': _strList,
        'aliases': _strList,
        'provenance': {'type': 'string'},
        'created': _dateTime,
        'updated': _dateTime,
        'creatorAddress': {
            'type': 'string',
            'description': 'Externally verified identity of the entity creator.',
        },
        'permissions': {
            'type': 'string',
            'enum': list(k_const.permissions),
        },
        'props': {'type': 'object', 'description': 'Freeform space.'},
    },
    'additionalProperties': False,
}

timeSchema = {
    '$id': schemaid('time'),
    '$schema': draft07,
    'name': 'time',
    'namespace': 'core',
    'version': '1.0.0',
    'description': 'COMPONENT: A temporal phenomenon with optional start / end.',
    'type': 'object',
    'properties': {
        'begins': _dateTime,
        'ends': _dateTime,
        'duration': {'type': 'string', 'description': 'ISO 8601 duration (e.g. P3D, PT2H).'},
    },
    'additionalProperties': False,
}

addressSchema = {
    '$id': schemaid('address'),
    '$schema': draft07,
    'name': 'address',
    'namespace': 'core',
    'version': '1.0.0',
    'description': 'COMPONENT: A physical or postal address.',
    'type': 'object',
    'properties': {
        'streetAddress': {'type': 'string'},
        'addressLocality': {'type': 'string', 'description': 'City'},
        'addressRegion': {'type': 'string', 'description': 'State / Province'},
        'postalCode': {'type': 'string'},
        'addressCountry': {'type': 'string'},
    },
    'additionalProperties': False,
}

locationSchema = {
    '$id': schemaid('location'),
    '$schema': draft07,
    'name': 'location',
    'namespace': 'core',
    'version': '1.0.0',
    'description': 'COMPONENT: A geographic location with coordinates and address.',
    'type': 'object',
    'properties': {
        'lat': {'type': 'number', 'minimum': -90, 'maximum': 90},
        'lon': {'type': 'number', 'minimum': -180, 'maximum': 180},
        'alt': {'type': 'number', 'description': 'Elevation in meters.'},
        'rad': {'type': 'number', 'minimum': 0, 'description': 'Radius of uncertainty in meters.'},
        'point': {
            'type': 'object',
            'description': 'Derived GeoJSON Point geometry.',
            'required': ['type', 'coordinates'],
            'properties': {
                'type': {'const': 'Point'},
                'coordinates': {
                    'type': 'array',
                    'items': {'type': 'number'},
                    'minItems': 2,
                    'maxItems': 3,
                    'description': '[longitude, latitude, elevation?]',
                },
            },
            'additionalProperties': False,
        },
        'address': _ref('address'),
    },
    'additionalProperties': False,
}

statsSchema = {
    '$id': schemaid('stats'),
    '$schema': draft07,
    'name': 'stats',
    'namespace': 'core',
    'version': '1.0.0',
    'description': 'COMPONENT: Statistical metrics about an entity.',
    'type': 'object',
    'properties': {
        'observers': {'type': 'number', 'description': 'Number following / watching this entity.'},
        'children': {'type': 'number', 'description': 'Number of child entities.'},
        'reputation': {'type': 'number', 'description': 'Quality / trust score.'},
        'weight': {'type': 'number', 'description': 'Relative importance / priority.'},
    },
    'additionalProperties': False,
}

relationSchema = {
    '$id': schemaid('relation'),
    '$schema': draft07,
    'name': 'relation',
    'namespace': 'core',
    'version': '1.0.0',
    'description': 'COMPONENT: A relationship between entities.',
    'type': 'object',
    'properties': {
        'kind': {'type': 'string', 'description': 'Type of relationship (contains, follows, etc).'},
        'source': {'type': 'string', 'description': 'Source entity id.'},
        'target': {'type': 'string', 'description': 'Target entity id.'},
        'strength': {'type': 'number', 'minimum': 0, 'maximum': 1},
    },
    'additionalProperties': False,
}

def _kindSchema(kind, desc):
    return {
        '$id': schemaid(kind),
        '$schema': draft07,
        'name': kind,
        'namespace': 'core',
        'version': '1.0.0',
        'description': f'ENTITY: {desc}',
        'type': 'object',
        'required': ['id', 'meta'],
        'properties': {
            'id': {'type': 'string', 'minLength': 1},
            'kind': {'const': kind},
            'meta': _ref('meta'),
            'time': _ref('time'),
            'location': _ref('location'),
            'stats': _ref('stats'),
            kind: {'type': 'object', 'description': f'Properties specific to a {kind}.'},
        },
        'additionalProperties': False,
    }

thingSchema = _kindSchema('thing', 'A generic thing or object.')
partySchema = _kindSchema('party', 'A person or agent.')
groupSchema = _kindSchema('group', 'A collection or grouping of other entities.')
placeSchema = _kindSchema('place', 'A named geographic place.')
orgSchema = _kindSchema('org', 'An organization.')

edgeSchema = {
    '$id': schemaid('edge'),
    '$schema': draft07,
    'name': 'edge',
    'namespace': 'core',
    'version': '1.0.0',
    'description': 'ENTITY: A directed relationship between two other entities.',
    'type': 'object',
    'required': ['id'],
    'properties': {
        'id': {'type': 'string', 'minLength': 1},
        'kind': {'const': 'edge'},
        'meta': _ref('meta'),
        'time': _ref('time'),
        'relation': _ref('relation'),
        'subject': {'type': 'string', 'minLength': 1},
        'predicate': {'type': 'string', 'minLength': 1},
        'object': {'type': 'string', 'minLength': 1},
        'rank': {'type': 'number'},
        'weight': {'type': 'number'},
        'edge': {'type': 'object', 'description': 'Extra data about the edge.'},
    },
    'dependencies': {
        'subject': ['predicate', 'object'],
    },
    'additionalProperties': False,
}

components = (
    metaSchema,
    timeSchema,
    addressSchema,
    locationSchema,
    statsSchema,
    relationSchema,
)

entities = (
    thingSchema,
    partySchema,
    groupSchema,
    placeSchema,
    orgSchema,
    edgeSchema,
)

schemas = components + entities
