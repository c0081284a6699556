"""Built-in feature systems and their default modules.

Used to seed the ``system_feature`` catalog and as the closed list of system
keys a feature tree may name.
"""

SYSTEM_ADMINISTRATION = 'system_administration'

# system_key -> (system_name, system_description, system_icon, [(module_key, module_name, module_description)])
BUILTIN_SYSTEMS = {
    'student_management': (
        'Student Management', 'Student records, enrollment and profiles', 'users', [
            ('student_records', 'Student Records', 'Maintain student profiles and documents'),
            ('enrollment', 'Enrollment', 'Enroll students into classes and sections'),
            ('attendance', 'Attendance', 'Daily and period-wise attendance'),
            ('promotions', 'Promotions', 'Promote students between academic years'),
        ]),
    'bus_management': (
        'Bus Management', 'School transport routes and vehicles', 'bus', [
            ('route_management', 'Route Management', 'Define routes and stops'),
            ('vehicle_tracking', 'Vehicle Tracking', 'Track bus locations'),
            ('driver_management', 'Driver Management', 'Drivers and assignments'),
        ]),
    'library_management': (
        'Library Management', 'Books, circulation and members', 'book', [
            ('book_catalog', 'Book Catalog', 'Catalog of books and media'),
            ('circulation', 'Circulation', 'Issue and return of books'),
            ('fines', 'Fines', 'Overdue fines and payments'),
        ]),
    'staff_management': (
        'Staff Management', 'Employees, departments and payroll data', 'briefcase', [
            ('staff_records', 'Staff Records', 'Employee profiles and documents'),
            ('departments', 'Departments', 'Department structure'),
            ('leave_tracking', 'Leave Tracking', 'Staff leave balances'),
            ('payroll', 'Payroll', 'Salary structures and payslips'),
        ]),
    'fee_management': (
        'Fee Management', 'Fee structures, collection and receipts', 'credit-card', [
            ('fee_structure', 'Fee Structure', 'Define fee heads and amounts'),
            ('fee_collection', 'Fee Collection', 'Collect and record payments'),
            ('receipts', 'Receipts', 'Generate payment receipts'),
            ('due_reports', 'Due Reports', 'Outstanding fee reports'),
        ]),
    'exam_management': (
        'Exam Management', 'Examinations, grading and report cards', 'clipboard', [
            ('exam_schedule', 'Exam Schedule', 'Plan examinations'),
            ('marks_entry', 'Marks Entry', 'Record marks per subject'),
            ('report_cards', 'Report Cards', 'Publish report cards'),
        ]),
    'hostel_management': (
        'Hostel Management', 'Rooms, allocations and mess', 'home', [
            ('room_allocation', 'Room Allocation', 'Allocate rooms to residents'),
            ('mess_management', 'Mess Management', 'Mess menus and billing'),
            ('visitor_log', 'Visitor Log', 'Record hostel visitors'),
        ]),
    'inventory_management': (
        'Inventory Management', 'Assets, stock and purchases', 'package', [
            ('asset_register', 'Asset Register', 'Track institutional assets'),
            ('stock_control', 'Stock Control', 'Consumable stock levels'),
            ('purchase_orders', 'Purchase Orders', 'Raise and track purchases'),
        ]),
    'communication_system': (
        'Communication System', 'Announcements, messages and notifications', 'message-circle', [
            ('announcements', 'Announcements', 'Institution-wide notices'),
            ('messaging', 'Messaging', 'Direct messages between users'),
            ('sms_email', 'SMS & Email', 'Bulk SMS and email'),
        ]),
    'event_management': (
        'Event Management', 'Events, calendars and registrations', 'calendar', [
            ('event_calendar', 'Event Calendar', 'Plan institutional events'),
            ('event_registration', 'Event Registration', 'Participant registration'),
        ]),
    'alumni_management': (
        'Alumni Management', 'Alumni network and engagement', 'award', [
            ('alumni_directory', 'Alumni Directory', 'Searchable alumni records'),
            ('alumni_events', 'Alumni Events', 'Reunions and meetups'),
        ]),
    'sports_management': (
        'Sports Management', 'Teams, fixtures and facilities', 'activity', [
            ('teams', 'Teams', 'Team rosters'),
            ('fixtures', 'Fixtures', 'Matches and results'),
            ('facility_booking', 'Facility Booking', 'Book sports facilities'),
        ]),
    'academic_management': (
        'Academic Management', 'Sessions, classes, subjects and timetables', 'book-open', [
            ('session_management', 'Session Management', 'Academic years and terms'),
            ('class_management', 'Class Management', 'Classes and sections'),
            ('subject_management', 'Subject Management', 'Subjects and curricula'),
            ('timetable', 'Timetable', 'Weekly timetables'),
        ]),
    'admission_management': (
        'Admission Management', 'Enquiries, applications and admissions', 'user-plus', [
            ('enquiries', 'Enquiries', 'Admission enquiries'),
            ('applications', 'Applications', 'Application processing'),
            ('admission_tests', 'Admission Tests', 'Entrance tests and results'),
        ]),
    'placement_management': (
        'Placement Management', 'Recruiters, drives and offers', 'trending-up', [
            ('recruiters', 'Recruiters', 'Recruiting companies'),
            ('placement_drives', 'Placement Drives', 'Campus drives'),
            ('offers', 'Offers', 'Offer letters and statistics'),
        ]),
    'health_management': (
        'Health Management', 'Medical records and infirmary', 'heart', [
            ('medical_records', 'Medical Records', 'Health history of members'),
            ('infirmary', 'Infirmary', 'Infirmary visits and treatments'),
        ]),
    'security_management': (
        'Security Management', 'Gate passes, visitors and incidents', 'shield', [
            ('gate_pass', 'Gate Pass', 'Entry and exit passes'),
            ('visitor_management', 'Visitor Management', 'Campus visitors'),
            ('incident_reports', 'Incident Reports', 'Security incidents'),
        ]),
    'research_management': (
        'Research Management', 'Projects, publications and grants', 'search', [
            ('projects', 'Projects', 'Research projects'),
            ('publications', 'Publications', 'Papers and publications'),
            ('grants', 'Grants', 'Funding and grants'),
        ]),
    'compliance_management': (
        'Compliance Management', 'Accreditation and regulatory compliance', 'check-square', [
            ('accreditation', 'Accreditation', 'Accreditation documentation'),
            ('regulatory_reports', 'Regulatory Reports', 'Statutory reporting'),
        ]),
    'analytics_dashboard': (
        'Analytics Dashboard', 'Institution-wide reports and insights', 'bar-chart', [
            ('academic_analytics', 'Academic Analytics', 'Performance insights'),
            ('financial_analytics', 'Financial Analytics', 'Revenue and fee insights'),
            ('custom_reports', 'Custom Reports', 'Build custom reports'),
        ]),
    SYSTEM_ADMINISTRATION: (
        'System Administration & Settings', 'Complete system configuration and management', 'settings', [
            ('user_management', 'User Management', 'Create and manage user accounts'),
            ('role_management', 'Role Management', 'Define user roles and permissions'),
            ('session_management', 'Session Management', 'User session and security settings'),
            ('system_settings', 'System Settings', 'Global system configuration'),
            ('backup_management', 'Backup Management', 'System backup and restore'),
            ('audit_logs', 'Audit Logs', 'System activity monitoring'),
            ('notification_settings', 'Notification Settings', 'System notification configuration'),
            ('integration_management', 'Integration Management', 'Third-party service integrations'),
            ('license_management', 'License Management', 'Software licensing and limits'),
        ]),
}

FEATURE_SYSTEMS = tuple(BUILTIN_SYSTEMS.keys())


def builtin_entry(system_key):
    """Feature-tree entry for a built-in system with all of its modules."""
    name, description, icon, modules = BUILTIN_SYSTEMS[system_key]
    return {
        'system_name': name,
        'system_description': description,
        'system_icon': icon,
        'selected_modules': [
            {'key': key, 'name': module_name, 'description': module_description}
            for key, module_name, module_description in modules
        ],
    }
