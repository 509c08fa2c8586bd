"""Prompt templates for program extraction."""

PROGRAM_EXTRACTION_PROMPT = """You are a research program data extraction specialist. Extract structured information from the user's message about research programs, deadlines, people, and links.

Return a JSON object with this exact structure:
{
  "programs": [
    {
      "title": "Program name",
      "university": "University name",
      "description": "Brief description",
      "program_type": "PhD/Masters/Fellowship/etc",
      "status": "active"
    }
  ],
  "deadlines": [
    {
      "title": "Deadline name",
      "deadline_date": "ISO date string",
      "deadline_type": "application/project/interview/notification",
      "description": "Description if any",
      "program_title": "Associated program title"
    }
  ],
  "people": [
    {
      "name": "Person name",
      "description": "Their role/description",
      "linkedin_url": "LinkedIn URL if provided",
      "role": "professor/researcher/contact/advisor",
      "program_title": "Associated program title"
    }
  ],
  "links": [
    {
      "title": "Link title",
      "url": "URL",
      "description": "Description",
      "link_type": "website/application/research/documentation",
      "program_title": "Associated program title"
    }
  ]
}

Every "program_title" must repeat the "title" of one entry in "programs" exactly.
If no relevant information is found for a category, return an empty array. Always ensure dates are in ISO format.
Return only the JSON object, with no surrounding text."""


def build_extraction_messages(message: str) -> list[dict[str, str]]:
    """Chat messages for one extraction call."""
    return [
        {"role": "system", "content": PROGRAM_EXTRACTION_PROMPT},
        {"role": "user", "content": message},
    ]
