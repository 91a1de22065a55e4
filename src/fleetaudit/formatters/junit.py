"""JUnit XML formatter for CI/CD integration.

One testsuite per entity, one testcase per finding. Findings at a failing
severity become ``<failure>`` elements; the rest pass.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from xml.dom import minidom
from xml.etree import ElementTree as ET

from ..models.finding import Finding, Severity


def group_findings_by_entity(findings: list[Finding]) -> dict[str, list[Finding]]:
    """Group findings by entity name, preserving first-seen order."""
    result: dict[str, list[Finding]] = {}
    for f in findings:
        result.setdefault(f.entity.name, []).append(f)
    return result


def export_junit_results(
    findings: list[Finding],
    output_path: Path,
    fail_on: list[Severity] | None = None,
    project_name: str = "fleetaudit",
    duration: float = 0,
) -> dict:
    """Export findings as JUnit XML.

    Args:
        findings: Evaluator output.
        output_path: Path to write the XML file.
        fail_on: Severities to mark as failures. Default: critical, high.
        project_name: Name for the testsuites element.
        duration: Total duration in seconds.

    Returns:
        Dict with: path, total_tests, failures, passed.
    """
    if fail_on is None:
        fail_on = [Severity.CRITICAL, Severity.HIGH]
    fail_set = set(fail_on)

    testsuites = ET.Element("testsuites")
    testsuites.set("name", project_name)
    testsuites.set("timestamp", datetime.now().strftime("%Y-%m-%dT%H:%M:%S"))

    total_tests = 0
    total_failures = 0

    for entity_name, entity_findings in group_findings_by_entity(findings).items():
        testsuite = ET.SubElement(testsuites, "testsuite")
        testsuite.set("name", entity_name)
        testsuite.set("tests", str(len(entity_findings)))

        suite_failures = 0

        for finding in entity_findings:
            total_tests += 1

            testcase = ET.SubElement(testsuite, "testcase")
            testcase.set("name", f"{finding.id}: {finding.title}")
            testcase.set("classname", finding.module or finding.category.value)

            if finding.severity in fail_set:
                total_failures += 1
                suite_failures += 1

                severity = finding.severity.value.upper()
                failure = ET.SubElement(testcase, "failure")
                failure.set("message", f"[{severity}] {finding.title}")
                failure.set("type", finding.severity.value)

                text_parts = [f"Severity: {severity}", f"Category: {finding.category.value}"]
                if finding.description:
                    text_parts.append(f"\nDescription:\n{finding.description}")
                text_parts.append(f"\nRemediation:\n{finding.action.label} ({finding.action.type.value})")

                failure.text = "\n".join(text_parts)

        testsuite.set("failures", str(suite_failures))
        testsuite.set("errors", "0")
        testsuite.set("skipped", "0")

    testsuites.set("tests", str(total_tests))
    testsuites.set("failures", str(total_failures))
    testsuites.set("errors", "0")
    if duration > 0:
        testsuites.set("time", str(round(duration, 2)))

    output_path.parent.mkdir(parents=True, exist_ok=True)

    # Pretty-print XML
    rough = ET.tostring(testsuites, encoding="unicode")
    dom = minidom.parseString(rough)
    xml_str = dom.toprettyxml(indent="  ", encoding="UTF-8")
    output_path.write_bytes(xml_str)

    return {
        "path": str(output_path),
        "total_tests": total_tests,
        "failures": total_failures,
        "passed": total_tests - total_failures,
    }
