_COMMON_RULES = """<rules>
CRITICAL RULES:
- Return ONLY valid JSON — no explanations, no markdown fences, no preamble, no text before or after the JSON
- Every key in the schema MUST be present in your answer
- If a field is EMPTY on the form (nothing written), use null. Never use an empty string and never omit the key
- If something IS written but you cannot read it, use the literal string "illegible". Do NOT guess
- Checkboxes: true when marked "Sí"/checked, false ONLY when "No" is explicitly marked, null when nothing is marked
- Dates exactly as DD/MM/YYYY (e.g. "05/03/2024"). If the day, month or year is missing, copy what is written; do not complete it
- Times in 24h format: HH:MM
- Counts are integers, not words
- RUN (Chilean national ID) as written, keeping the verifier digit (e.g. "12.345.678-9")
- Handle handwriting artifacts gracefully (e.g. "l" vs "1", "O" vs "0") but never invent content
- Transcribe narrative/observation text verbatim, in the original language (Spanish)
- One object per row in tables. If a row repeats, repeat it
</rules>"""


FIELD_SPEC_V1 = """<instructions>
You are an expert at transcribing handwritten fire department incident reports ("parte de incendio", Bomberos de Chile).
Your goal is to extract EVERY piece of information written on the form into a single structured JSON object.
The photos may show one or several pages of the SAME form. Combine them into one answer.
</instructions>

""" + _COMMON_RULES + """

<schema>
{
  "act_number": "N° Acto / Parte — string or null",
  "ticket_number": "N° Boleta — string or null",
  "date": "DD/MM/YYYY or null",
  "time": "HH:MM (hora del llamado) or null",
  "address": "Dirección del siniestro — string or null",
  "corner": "Esquina de referencia — string or null",
  "area": "Sector / Población / Villa — string or null",
  "box": "N° Casilla — string or null",
  "nature": "Naturaleza del llamado — string or null",
  "origin": "Origen — string or null",
  "cause": "Causa — string or null",
  "damage": "Daños — string or null",
  "commander": "A cargo del Cuerpo — string or null",
  "company_commander": "A cargo de la Compañía — string or null",
  "total_volunteers": 12,
  "safety_officer": "Oficial de seguridad — string or null",
  "vehicles": [
    {"brand": "string or null", "model": "string or null", "plate": "string or null", "driver": "string or null", "run": "string or null"}
  ],
  "involved_people": [
    {"name": "string or null", "run": "string or null", "attended_by_132": true, "observation": "string or null", "status": "string or null"}
  ],
  "institutions_present": {
    "carabineros": true,
    "samu": null,
    "municipal_security": null,
    "chilquinta": null,
    "esval": null,
    "gas_station": null
  },
  "observations": "full handwritten narrative, verbatim, or null"
}
</schema>"""


FIELD_SPEC_V2 = """<instructions>
You are an expert at transcribing handwritten fire department incident reports ("parte de incendio", Bomberos de Chile).
Your goal is to extract EVERY piece of information written on the form into a single structured JSON object.
The photos may show one or several pages of the SAME form (front and back). Combine them into one answer.

Read the form section by section:
1. Header: act number, ticket number, date, call / arrival / departure times
2. Location: address, corner, district (comuna), sector or población, box number, rural checkbox
3. Command: officer in charge of the department, of the company, safety officer, total volunteers
4. Classification: nature of the call, origin, cause, damage
5. Casualties: counts of injured, involved and affected persons ("lesionados", "involucrados", "damnificados")
6. Insurance: company and policy number if written
7. Company attendance grid: number of volunteers present per company (1ª to 6ª)
8. Vehicles table, involved people table, institutions present table
9. Observations (front) and other observations (back), verbatim
</instructions>

""" + _COMMON_RULES + """

<schema>
{
  "act_number": "string or null",
  "ticket_number": "string or null",
  "date": "DD/MM/YYYY or null",
  "time": "HH:MM (hora del llamado) or null",
  "arrival_time": "HH:MM (hora de llegada) or null",
  "departure_time": "HH:MM (hora de retiro) or null",
  "address": "string or null",
  "corner": "string or null",
  "district": "comuna — string or null",
  "area": "sector / población / villa — string or null",
  "box": "string or null",
  "is_rural": null,
  "nature": "string or null",
  "origin": "string or null",
  "cause": "string or null",
  "damage": "string or null",
  "commander": "string or null",
  "company_commander": "string or null",
  "total_volunteers": 12,
  "safety_officer": "string or null",
  "injured_count": 0,
  "involved_count": 2,
  "affected_count": 0,
  "insurance": {"company": "string or null", "policy_number": "string or null"},
  "company_attendance": {"company_1": 5, "company_2": null, "company_3": null, "company_4": null, "company_5": null, "company_6": null},
  "vehicles": [
    {"brand": "string or null", "model": "string or null", "plate": "string or null", "driver": "string or null", "run": "string or null"}
  ],
  "involved_people": [
    {"name": "string or null", "run": "string or null", "received_medical_attention": null, "observation": "string or null", "status": "string or null"}
  ],
  "institutions_present": {
    "carabineros": {"present": true, "rank": "string or null", "precinct": "string or null", "mobile_unit": "patrol number or null", "entity_name": null},
    "samu": {"present": null, "rank": null, "precinct": null, "mobile_unit": "ambulance number or null", "entity_name": null},
    "municipal_security": {"present": null, "rank": null, "precinct": null, "mobile_unit": null, "entity_name": null},
    "utility_company": {"present": null, "rank": null, "precinct": null, "mobile_unit": null, "entity_name": "e.g. Chilquinta, Esval"}
  },
  "observations": "verbatim or null",
  "other_observations": "verbatim or null"
}
</schema>"""


FIELD_SPECS: dict[str, str] = {
    "v1": FIELD_SPEC_V1,
    "v2": FIELD_SPEC_V2,
}
