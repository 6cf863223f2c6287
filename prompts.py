# prompts.py

from typing import List, Optional

from config import EXTRACTION_FIELDS, CONTAINER_FIELDS, NOT_FOUND_SENTINEL

EXTRACTION_PROMPT_TEMPLATE = """You are an expert AI assistant specializing in international trade document analysis.
Your task is to extract key data from the uploaded files (Commercial Invoice, Packing List, or Bill of Lading).

**Instructions:**
1. Extract the following "General Information" fields in "Key: Value" format.
2. If multiple documents are provided, cross-reference them for accuracy.
3. Extract all container details from the Bill of Lading into a formatted table or clear list.
4. If any field is missing, strictly write "{sentinel}".

**Extraction Fields:**
{field_list_str}

**Container Details:**
Extract: {container_fields_str}."""


def build_extraction_prompt(
    fields: Optional[List[str]] = None,
    container_fields: Optional[List[str]] = None,
    sentinel: Optional[str] = None,
) -> str:
    """Renders the instruction text that leads every extraction request."""
    fields = fields if fields is not None else EXTRACTION_FIELDS
    container_fields = container_fields if container_fields is not None else CONTAINER_FIELDS
    field_list_str = "\n".join([f"- {field}" for field in fields])
    container_fields_str = ", ".join(container_fields[:-1])
    if len(container_fields) > 1:
        container_fields_str += f", and {container_fields[-1]}"
    elif container_fields:
        container_fields_str = container_fields[0]
    return EXTRACTION_PROMPT_TEMPLATE.format(
        sentinel=sentinel or NOT_FOUND_SENTINEL,
        field_list_str=field_list_str,
        container_fields_str=container_fields_str,
    )
