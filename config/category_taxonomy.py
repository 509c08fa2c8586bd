"""Category taxonomy for program types, deadline types, roles and link types.

Colours follow the badge palette of the tracker UI. Synonyms cover the
spellings the extraction model tends to produce.
"""

DEFAULT_COLOR = "gray"

CATEGORY_TAXONOMY = {
    "program_type": [
        {"canonical": "PhD", "synonyms": ["phd", "ph.d.", "ph.d", "doctorate", "doctoral"], "color": "purple"},
        {"canonical": "Masters", "synonyms": ["masters", "master", "master's", "msc", "ms", "m.s."], "color": "blue"},
        {"canonical": "Fellowship", "synonyms": ["fellowship"], "color": "green"},
        {"canonical": "Postdoc", "synonyms": ["postdoc", "post-doc", "postdoctoral"], "color": "orange"},
    ],
    "deadline_type": [
        {"canonical": "application", "synonyms": ["application"], "color": "red"},
        {"canonical": "project", "synonyms": ["project"], "color": "blue"},
        {"canonical": "interview", "synonyms": ["interview"], "color": "purple"},
        {"canonical": "notification", "synonyms": ["notification", "decision"], "color": "green"},
    ],
    "role": [
        {"canonical": "professor", "synonyms": ["professor", "prof", "prof."], "color": "purple"},
        {"canonical": "researcher", "synonyms": ["researcher"], "color": "blue"},
        {"canonical": "contact", "synonyms": ["contact"], "color": "green"},
        {"canonical": "advisor", "synonyms": ["advisor", "adviser", "supervisor"], "color": "orange"},
    ],
    "link_type": [
        {"canonical": "website", "synonyms": ["website", "homepage"], "color": "blue"},
        {"canonical": "application", "synonyms": ["application", "application portal"], "color": "red"},
        {"canonical": "research", "synonyms": ["research", "paper", "publication"], "color": "purple"},
        {"canonical": "documentation", "synonyms": ["documentation", "docs"], "color": "green"},
    ],
}

TAXONOMY_VERSION = "categories-v1"
