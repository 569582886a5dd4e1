from typing import List, Dict, Any

from ..knowledge.models import KnowledgeCategory, SourceType

_CATEGORIES = [c.value for c in KnowledgeCategory]
_SOURCE_TYPES = [s.value for s in SourceType]


def get_tool_definitions() -> List[Dict[str, Any]]:
    """Get tool definitions for the server.

    Returns:
        List of tool definition dictionaries
    """
    return [
        {
            "name": "chunk_text",
            "description": "Splits text into sentence-respecting, overlapping chunks bounded by an estimated token count. Handles Japanese and Western punctuation.",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "text": {
                        "type": "string",
                        "description": "The extracted document text to chunk."
                    },
                    "max_chunk_tokens": {
                        "type": "integer",
                        "description": "Maximum estimated tokens per chunk.",
                        "minimum": 1
                    },
                    "overlap_tokens": {
                        "type": "integer",
                        "description": "Token budget of trailing sentences repeated at the start of the next chunk.",
                        "minimum": 0
                    },
                    "min_chunk_tokens": {
                        "type": "integer",
                        "description": "Chunks below this size are merged into a neighbour.",
                        "minimum": 0
                    }
                },
                "required": ["text"]
            }
        },
        {
            "name": "embed_texts",
            "description": "Generates embedding vectors for a list of texts, batched and rate limited against the embedding provider.",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "texts": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Non-empty texts to embed."
                    },
                    "mode": {
                        "type": "string",
                        "description": "'document' for indexing, 'query' for search input.",
                        "default": "document",
                        "enum": ["document", "query"]
                    }
                },
                "required": ["texts"]
            }
        },
        {
            "name": "ingest_document",
            "description": "Chunks, embeds and stores a document as project knowledge, then detects duplicates among the new entries.",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "project_id": {"type": "string", "description": "Owning project."},
                    "document_id": {"type": "string", "description": "Source document identifier."},
                    "text": {"type": "string", "description": "Extracted document text."},
                    "category": {
                        "type": "string",
                        "description": "Knowledge category of the resulting entries.",
                        "default": "company-info",
                        "enum": _CATEGORIES
                    },
                    "source_type": {
                        "type": "string",
                        "description": "Origin of the document.",
                        "default": "uploaded-document",
                        "enum": _SOURCE_TYPES
                    },
                    "reliability": {
                        "type": "integer",
                        "description": "Reliability score of the entries.",
                        "default": 50,
                        "minimum": 0,
                        "maximum": 100
                    },
                    "document_name": {"type": "string", "description": "Human-readable document name."},
                    "metadata": {
                        "type": "object",
                        "description": "Extra metadata copied onto every entry.",
                        "default": {}
                    }
                },
                "required": ["project_id", "document_id", "text"]
            }
        },
        {
            "name": "search_knowledge",
            "description": "Finds the project knowledge most similar to a natural language query.",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "project_id": {"type": "string", "description": "Project to search."},
                    "query": {"type": "string", "description": "Natural language query."},
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of results to return.",
                        "default": 10,
                        "minimum": 1
                    },
                    "threshold": {
                        "type": "number",
                        "description": "Minimum cosine similarity.",
                        "default": 0.7
                    },
                    "category": {
                        "type": "string",
                        "description": "Restrict results to one knowledge category.",
                        "enum": _CATEGORIES
                    },
                    "record_usage": {
                        "type": "boolean",
                        "description": "Count returned entries as used.",
                        "default": True
                    }
                },
                "required": ["project_id", "query"]
            }
        },
        {
            "name": "detect_duplicates",
            "description": "Runs exact, semantic and fuzzy duplicate detection and stores the resulting duplicate groups.",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "project_id": {"type": "string", "description": "Project to check."},
                    "knowledge_ids": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Candidate entries to check. Default: every entry of the project."
                    }
                },
                "required": ["project_id"]
            }
        },
        {
            "name": "get_duplicate_stats",
            "description": "Get duplicate group statistics for a project.",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "project_id": {"type": "string", "description": "Project to report on."}
                },
                "required": ["project_id"]
            }
        },
        {
            "name": "remove_from_duplicate_group",
            "description": "Takes a knowledge entry out of its duplicate group; the group is replaced or dissolved.",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "knowledge_id": {"type": "string", "description": "Entry to remove."}
                },
                "required": ["knowledge_id"]
            }
        },
        {
            "name": "merge_duplicate_group",
            "description": "Merges a duplicate group into its representative and deletes the duplicates.",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "group_id": {"type": "string", "description": "Duplicate group to merge."}
                },
                "required": ["group_id"]
            }
        },
        {
            "name": "get_engine_stats",
            "description": "Get embedding, deduplication and merge statistics of the running engine.",
            "inputSchema": {
                "type": "object",
                "properties": {}
            }
        }
    ]
