"""
Static report definitions, grouped by category.

Loaded once by ``app.services.report_catalog.get_report_catalog``.
"""

from app.services.report_catalog import (
    FACULTY,
    PRINCIPAL,
    STATE_DIRECTORATE,
    STUDENT,
    SYSTEM_ADMIN,
    DefinedLayout,
    FilterOption,
    ReportCategory,
    ReportColumn,
    ReportDefinition,
    ReportFilter,
    SynthesizedLayout,
)


REPORT_CATEGORIES = (
    ReportCategory(key="student", label="Student Reports", icon="team"),
    ReportCategory(key="mentor", label="Mentor Reports", icon="user"),
    ReportCategory(key="internship", label="Internship Reports", icon="laptop"),
    ReportCategory(key="compliance", label="Compliance Reports", icon="audit"),
    ReportCategory(key="institute", label="Institution Reports", icon="bank"),
    ReportCategory(key="pending", label="Pending Reports", icon="clock-circle"),
)


# -------------------------------------------------------------------------
# Shared filters
# -------------------------------------------------------------------------
INSTITUTION = ReportFilter(id="institutionId", label="Institution", dynamic=True)
BRANCH = ReportFilter(id="branchId", label="Branch", dynamic=True)
MENTOR = ReportFilter(id="mentorId", label="Mentor", dynamic=True)
DISTRICT = ReportFilter(id="district", label="District", dynamic=True)
INDUSTRY_TYPE = ReportFilter(id="industryType", label="Industry Type", dynamic=True)
ACADEMIC_YEAR = ReportFilter(id="academicYear", label="Academic Year", dynamic=True)
YEAR = ReportFilter(id="year", label="Year", dynamic=True)
MONTH = ReportFilter(
    id="month",
    label="Month",
    options=tuple(
        FilterOption(label=name, value=i)
        for i, name in enumerate(
            (
                "January", "February", "March", "April", "May", "June",
                "July", "August", "September", "October", "November", "December",
            ),
            start=1,
        )
    ),
)
DATE_RANGE = ReportFilter(id="dateRange", label="Date Range", type="dateRange")
IS_ACTIVE = ReportFilter(id="isActive", label="Active Only", type="boolean")
INTERNSHIP_STATUS = ReportFilter(
    id="status",
    label="Status",
    options=(
        FilterOption(label="Applied", value="APPLIED"),
        FilterOption(label="Selected", value="SELECTED"),
        FilterOption(label="Ongoing", value="ONGOING"),
        FilterOption(label="Completed", value="COMPLETED"),
        FilterOption(label="Rejected", value="REJECTED"),
    ),
)
SUBMISSION_STATUS = ReportFilter(
    id="status",
    label="Submission Status",
    options=(
        FilterOption(label="Submitted", value="SUBMITTED"),
        FilterOption(label="Approved", value="APPROVED"),
        FilterOption(label="Pending", value="PENDING"),
        FilterOption(label="Overdue", value="OVERDUE"),
    ),
)


def _col(id: str, label: str, type: str = "string", width: int = 15, default: bool = True) -> ReportColumn:
    return ReportColumn(id=id, label=label, type=type, width=width, default=default)


_STUDENT_COLUMNS = (
    _col("rollNumber", "Roll Number"),
    _col("name", "Student Name", width=20),
    _col("email", "Email", width=25),
    _col("phoneNumber", "Phone"),
    _col("branch", "Branch"),
    _col("currentYear", "Year", "number", 8),
    _col("currentSemester", "Semester", "number", 10),
    _col("internshipsCount", "Internships", "number", 12),
    _col("placementsCount", "Placements", "number", 12),
    _col("status", "Status", width=12),
)

_INTERNSHIP_COLUMNS = (
    _col("studentName", "Student Name", width=20),
    _col("rollNumber", "Roll Number"),
    _col("branch", "Branch"),
    _col("companyName", "Company", width=25),
    _col("jobProfile", "Job Profile", width=20),
    _col("startDate", "Start Date", "date", 12),
    _col("endDate", "End Date", "date", 12),
    _col("duration", "Duration", width=10),
    _col("status", "Status", width=12),
    _col("mentorName", "Mentor", width=18),
    _col("reportsSubmitted", "Reports", "number", 10),
    _col("location", "Location"),
)

_FACULTY_VISIT_COLUMNS = (
    _col("facultyName", "Faculty Name", width=20),
    _col("facultyDesignation", "Designation"),
    _col("studentName", "Student Name", width=20),
    _col("rollNumber", "Roll Number"),
    _col("companyName", "Company", width=25),
    _col("visitDate", "Visit Date", "date", 12),
    _col("visitType", "Visit Type", width=12),
    _col("visitLocation", "Location"),
    _col("followUpRequired", "Follow-up", "boolean", 10),
    _col("nextVisitDate", "Next Visit", "date", 12),
)

_MONTHLY_COLUMNS = (
    _col("studentName", "Student Name", width=20),
    _col("rollNumber", "Roll Number"),
    _col("companyName", "Company", width=25),
    _col("month", "Month", "number", 8),
    _col("year", "Year", "number", 8),
    _col("status", "Status", width=12),
    _col("submittedAt", "Submitted At", "date"),
    _col("reportFileUrl", "Report URL", width=30, default=False),
)

_STUDENT_PROGRESS_COLUMNS = _STUDENT_COLUMNS + (_col("isActive", "Active", "boolean", 8),)

_MENTOR_LIST_COLUMNS = (
    _col("facultyName", "Faculty Name", width=20),
    _col("facultyDesignation", "Designation"),
    _col("studentName", "Student Name", width=20),
    _col("companyName", "Company", width=25),
)

_INTERNSHIP_STATUS_COLUMNS = (
    _col("studentName", "Student Name", width=20),
    _col("rollNumber", "Roll Number"),
    _col("companyName", "Company", width=25),
    _col("status", "Status", width=12),
    _col("mentorName", "Mentor", width=18),
    _col("reportsSubmitted", "Reports", "number", 10),
)

_MONTHLY_STATUS_COLUMNS = (
    _col("studentName", "Student Name", width=20),
    _col("rollNumber", "Roll Number"),
    _col("month", "Month", "number", 8),
    _col("year", "Year", "number", 8),
    _col("status", "Status", width=12),
)

_PLACEMENT_COLUMNS = (
    _col("studentName", "Student Name", width=20),
    _col("rollNumber", "Roll Number"),
    _col("email", "Email", width=25),
    _col("companyName", "Company", width=25),
    _col("jobRole", "Role", width=20),
    _col("salary", "Package", "number", 12),
    _col("offerDate", "Offer Date", "date", 12),
    _col("status", "Status", width=12),
)

_INSTITUTION_PERFORMANCE_COLUMNS = (
    _col("institutionName", "Institution", width=30),
    _col("district", "District"),
    _col("totalStudents", "Students", "number", 12),
    _col("activeInternships", "Active Internships", "number", 18),
    _col("completedInternships", "Completed", "number", 12),
    _col("facultyVisits", "Faculty Visits", "number", 14),
    _col("reportSubmissionRate", "Submission Rate", "number", 16),
)


REPORT_DEFINITIONS = (
    # ---------------------------------------------------------------------
    # Student
    # ---------------------------------------------------------------------
    ReportDefinition(
        type="student-progress",
        name="Student Progress",
        description="Internship and placement progress per student",
        category="student",
        icon="rise",
        available_for=frozenset({STATE_DIRECTORATE, PRINCIPAL, FACULTY}),
        columns=_STUDENT_PROGRESS_COLUMNS,
        filters=(INSTITUTION, BRANCH, ACADEMIC_YEAR, IS_ACTIVE),
        group_by=("branch", "currentYear"),
        layout=DefinedLayout(_STUDENT_PROGRESS_COLUMNS),
    ),
    ReportDefinition(
        type="student-directory",
        name="Student Directory",
        description="Contact directory of enrolled students",
        category="student",
        icon="contacts",
        available_for=frozenset({STATE_DIRECTORATE, PRINCIPAL, FACULTY, SYSTEM_ADMIN}),
        columns=_STUDENT_COLUMNS,
        filters=(INSTITUTION, BRANCH, DISTRICT, IS_ACTIVE),
        group_by=("branch",),
        layout=DefinedLayout(_STUDENT_COLUMNS),
    ),
    # ---------------------------------------------------------------------
    # Mentor
    # ---------------------------------------------------------------------
    ReportDefinition(
        type="faculty-visit",
        name="Faculty Visit",
        description="Industry visits logged by faculty mentors",
        category="mentor",
        icon="environment",
        available_for=frozenset({STATE_DIRECTORATE, PRINCIPAL, FACULTY}),
        columns=_FACULTY_VISIT_COLUMNS,
        filters=(INSTITUTION, MENTOR, DATE_RANGE),
        group_by=("facultyName",),
        layout=DefinedLayout(_FACULTY_VISIT_COLUMNS),
    ),
    ReportDefinition(
        type="mentor-list",
        name="Mentor Assignment",
        description="Mentors and the students assigned to them",
        category="mentor",
        icon="user",
        available_for=frozenset({STATE_DIRECTORATE, PRINCIPAL}),
        columns=_MENTOR_LIST_COLUMNS,
        filters=(INSTITUTION, MENTOR),
        layout=DefinedLayout(_MENTOR_LIST_COLUMNS),
    ),
    # ---------------------------------------------------------------------
    # Internship
    # ---------------------------------------------------------------------
    ReportDefinition(
        type="internship",
        name="Internship Details",
        description="All internships with company, mentor and duration",
        category="internship",
        icon="laptop",
        available_for=frozenset({STATE_DIRECTORATE, PRINCIPAL, FACULTY}),
        columns=_INTERNSHIP_COLUMNS,
        filters=(INSTITUTION, BRANCH, INDUSTRY_TYPE, INTERNSHIP_STATUS, DATE_RANGE),
        group_by=("companyName", "status"),
        layout=DefinedLayout(_INTERNSHIP_COLUMNS),
    ),
    ReportDefinition(
        type="internship-status",
        name="Internship Status",
        description="Current status of each student's internship",
        category="internship",
        icon="check-circle",
        available_for=frozenset({STATE_DIRECTORATE, PRINCIPAL, FACULTY, STUDENT}),
        columns=_INTERNSHIP_STATUS_COLUMNS,
        filters=(INSTITUTION, INTERNSHIP_STATUS),
        export_formats=("excel", "csv", "json"),
        layout=DefinedLayout(_INTERNSHIP_STATUS_COLUMNS),
    ),
    # ---------------------------------------------------------------------
    # Compliance
    # ---------------------------------------------------------------------
    ReportDefinition(
        type="monthly",
        name="Monthly Reports",
        description="Monthly internship reports submitted by students",
        category="compliance",
        icon="calendar",
        available_for=frozenset({STATE_DIRECTORATE, PRINCIPAL, FACULTY}),
        columns=_MONTHLY_COLUMNS,
        filters=(INSTITUTION, MONTH, YEAR, SUBMISSION_STATUS),
        group_by=("month", "status"),
        layout=DefinedLayout(_MONTHLY_COLUMNS),
    ),
    ReportDefinition(
        type="monthly-report-status",
        name="Monthly Report Status",
        description="Submission status of monthly reports for a given month",
        category="compliance",
        icon="audit",
        available_for=frozenset({STATE_DIRECTORATE, PRINCIPAL, FACULTY, STUDENT}),
        columns=_MONTHLY_STATUS_COLUMNS,
        filters=(
            INSTITUTION,
            ReportFilter(id="month", label="Month", required=True, options=MONTH.options),
            ReportFilter(id="year", label="Year", required=True, dynamic=True),
        ),
        export_formats=("excel", "csv", "json"),
        layout=DefinedLayout(_MONTHLY_STATUS_COLUMNS),
    ),
    # ---------------------------------------------------------------------
    # Institution
    # ---------------------------------------------------------------------
    ReportDefinition(
        type="placement",
        name="Placement",
        description="Placements by company and package",
        category="institute",
        icon="trophy",
        available_for=frozenset({STATE_DIRECTORATE, PRINCIPAL}),
        columns=_PLACEMENT_COLUMNS,
        filters=(INSTITUTION, BRANCH, ACADEMIC_YEAR),
        group_by=("companyName",),
        layout=DefinedLayout(_PLACEMENT_COLUMNS),
    ),
    ReportDefinition(
        type="institution-performance",
        name="Institution Performance",
        description="State-wide comparison of institutions",
        category="institute",
        icon="bar-chart",
        available_for=frozenset({STATE_DIRECTORATE}),
        columns=_INSTITUTION_PERFORMANCE_COLUMNS,
        filters=(DISTRICT, ACADEMIC_YEAR),
        export_formats=("excel", "csv", "pdf"),
        layout=DefinedLayout(_INSTITUTION_PERFORMANCE_COLUMNS),
    ),
    # ---------------------------------------------------------------------
    # Pending (shape varies by data source; columns come from the rows)
    # ---------------------------------------------------------------------
    ReportDefinition(
        type="pending-monthly-reports",
        name="Pending Monthly Reports",
        description="Students who have not submitted this month's report",
        category="pending",
        icon="clock-circle",
        available_for=frozenset({STATE_DIRECTORATE, PRINCIPAL, FACULTY}),
        columns=(
            _col("studentName", "Student Name", width=20),
            _col("rollNumber", "Roll Number"),
            _col("mentorName", "Mentor", width=18),
            _col("daysOverdue", "Days Overdue", "number", 12),
        ),
        filters=(INSTITUTION, MENTOR, MONTH, YEAR),
        layout=SynthesizedLayout(),
    ),
    ReportDefinition(
        type="pending-joining-letters",
        name="Pending Joining Letters",
        description="Internships still waiting on a joining letter",
        category="pending",
        icon="file-exclamation",
        available_for=frozenset({STATE_DIRECTORATE, PRINCIPAL}),
        columns=(
            _col("studentName", "Student Name", width=20),
            _col("companyName", "Company", width=25),
            _col("startDate", "Start Date", "date", 12),
        ),
        filters=(INSTITUTION, BRANCH),
        layout=SynthesizedLayout(),
    ),
)
