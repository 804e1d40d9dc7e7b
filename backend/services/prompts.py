"""
Prompt templates for the two generation flows.

The format rules live inside the prompt; the completion service is not
assumed to enforce any structure on its own.
"""
import json

from langchain_core.prompts import PromptTemplate

from backend.services.schema_model import SchemaDef

SCHEMA_WITH_DATA_PROMPT = """Generate ONLY a JSON object with the following EXACT structure (no extra text, no explanations, only the JSON object):

{{
  "schema": {{
    "tables": [
      {{
        "name": "TableName1",
        "fields": [
          {{ "name": "field1", "type": "TYPE1", "required": true|false }},
          {{ "name": "field2", "type": "TYPE2", "required": true|false }}
        ]
      }}
    ],
    "relationships": [
      {{
        "sourceTable": "SourceTable",
        "sourceField": "source_field",
        "targetTable": "TargetTable",
        "targetField": "target_field",
        "cardinality": "1:1"|"1:N"|"N:1"|"N:N"
      }}
    ]
  }},
  "data": {{
    "TableName1": [
      {{ "field1": value1, "field2": value2 }}
    ]
  }}
}}

Rules:

1. The JSON must contain the keys "schema" and "data", spelled exactly like that.
2. Inside "schema", "tables" is an array of objects with:
   - name (string)
   - fields: an array of objects {{ name: string, type: string, required: boolean }}
3. Inside "schema", "relationships" is an array of objects with:
   - sourceTable, sourceField, targetTable, targetField (all strings)
   - cardinality: only "1:1", "1:N", "N:1" or "N:N"
4. Inside "data" there must be one key per table listed in "schema.tables".
   - Each key is the table name.
   - Each value is an array of objects with {{ fieldName: value }} pairs for all the fields of that table.
   - Use realistic sample values: strings for VARCHAR, numbers for INT, dates as "YYYY-MM-DD" for DATE.
5. Do not include comments, narrative text or explanations outside the JSON.
6. If your first answer does not follow this EXACT structure, try again (up to {max_attempts} times in total).
7. If after {max_attempts} attempts you still cannot produce a JSON in the required format, answer exactly (no quotes, no extra text):
   {failure_message}

Now, given this business requirement:
"{description}"
generate the tables, relationships and sample data for that business model. Answer only with the JSON object that follows the rules above.
"""

SQL_PROMPT = """Given the following database structure in JSON format (tables and relationships only):

{schema_json}

Generate ONLY the valid SQL query for the following natural-language request:
"{request}"

The main table being queried is "{table_name}".
- Your answer must be only the SQL string, with no extra text or explanations.
- If your first answer is not valid SQL (starting with SELECT and containing the table name), try again up to {max_attempts} times.
- If after {max_attempts} attempts you still cannot produce valid SQL, answer exactly (no quotes, no extra text):
{failure_message}
"""

_SCHEMA_WITH_DATA_TEMPLATE = PromptTemplate.from_template(SCHEMA_WITH_DATA_PROMPT)
_SQL_TEMPLATE = PromptTemplate.from_template(SQL_PROMPT)


def schema_failure_message(max_attempts: int) -> str:
    return f"Error: could not generate the schema in the required format after {max_attempts} attempts."


def sql_failure_message(max_attempts: int) -> str:
    return f"Error: could not generate a valid SQL query after {max_attempts} attempts."


def build_schema_with_data_prompt(description: str, max_attempts: int = 5) -> str:
    return _SCHEMA_WITH_DATA_TEMPLATE.format(
        description=description.strip(),
        max_attempts=max_attempts,
        failure_message=schema_failure_message(max_attempts),
    ).strip()


def build_sql_prompt(schema: SchemaDef, table_name: str, request: str, max_attempts: int = 5) -> str:
    schema_json = json.dumps(schema.to_dict(), indent=2, ensure_ascii=False)
    return _SQL_TEMPLATE.format(
        schema_json=schema_json,
        request=request.strip(),
        table_name=table_name,
        max_attempts=max_attempts,
        failure_message=sql_failure_message(max_attempts),
    ).strip()
